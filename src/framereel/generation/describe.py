"""Frame captioning with Gemini: one vivid sentence per frame, used as a video prompt."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from google import genai
from google.genai import types

from framereel.config import DESCRIBE_INSTRUCTION
from framereel.errors import DescriptionError
from framereel.models import Frame

logger = logging.getLogger(__name__)


class Describer:
    """Sends a frame plus a fixed instruction to an image-understanding model.

    ``retries`` adds bounded retry with linear backoff; the default of 0
    makes a single attempt.
    """

    def __init__(
        self,
        client: genai.Client,
        model: str = "gemini-2.5-flash",
        instruction: str = DESCRIBE_INSTRUCTION,
        retries: int = 0,
        retry_delay_s: float = 2.0,
    ) -> None:
        self._client = client
        self.model = model
        self.instruction = instruction
        self.retries = retries
        self.retry_delay_s = retry_delay_s

    async def describe(self, frame: Frame) -> str:
        """Return a one-sentence caption for *frame*.

        Raises
        ------
        DescriptionError
            If every attempt fails or the model returns no text.
        """
        attempts = self.retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return await self._describe_once(frame)
            except Exception as exc:
                last_error = exc
                if attempt < attempts:
                    logger.warning(
                        "Describe attempt %d/%d for %.2fs failed: %s",
                        attempt, attempts, frame.timestamp_s, exc,
                    )
                    await asyncio.sleep(self.retry_delay_s * attempt)

        if isinstance(last_error, DescriptionError):
            raise last_error
        raise DescriptionError(frame.timestamp_s, str(last_error)) from last_error

    async def _describe_once(self, frame: Frame) -> str:
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=[
                types.Part.from_bytes(data=frame.image, mime_type="image/jpeg"),
                self.instruction,
            ],
        )
        text = (response.text or "").strip()
        if not text:
            raise DescriptionError(frame.timestamp_s, "the model returned an empty description")
        return text
