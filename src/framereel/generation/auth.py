"""API key providers for the generative service."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from framereel.config import get_settings
from framereel.errors import AuthorizationError

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    async def has_credential(self) -> bool: ...

    async def select_credential(self) -> None: ...

    def credential(self) -> str: ...


class EnvCredentialProvider:
    """Uses the key from settings (``FRAMEREEL_API_KEY`` / ``GEMINI_API_KEY``).

    There is nothing to select interactively, so :meth:`select_credential`
    is a no-op and a missing key stays missing.
    """

    def __init__(self, api_key: Optional[str] = None) -> None:
        self._api_key = (api_key if api_key is not None else get_settings().api_key).strip()

    async def has_credential(self) -> bool:
        return bool(self._api_key)

    async def select_credential(self) -> None:
        logger.debug("No interactive key selection available")

    def credential(self) -> str:
        return self._api_key


class PromptCredentialProvider(EnvCredentialProvider):
    """Falls back to asking the user when no key is configured.

    *ask* is a blocking callable returning the entered key (the CLI passes a
    hidden ``typer.prompt``); it runs in a worker thread.
    """

    def __init__(self, ask: Callable[[], str], api_key: Optional[str] = None) -> None:
        super().__init__(api_key)
        self._ask = ask

    async def select_credential(self) -> None:
        entered = await asyncio.to_thread(self._ask)
        self._api_key = (entered or "").strip()


async def ensure_credential(provider: CredentialProvider) -> str:
    """Return a usable key, prompting for one if necessary.

    Raises
    ------
    AuthorizationError
        If no key is available after selection, or the provider fails.
    """
    try:
        if not await provider.has_credential():
            await provider.select_credential()
        if not await provider.has_credential():
            raise AuthorizationError("no API key was provided")
    except AuthorizationError:
        raise
    except Exception as exc:
        raise AuthorizationError(f"key selection failed: {exc}") from exc
    return provider.credential()
