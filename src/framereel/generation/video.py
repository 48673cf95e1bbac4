"""Veo clip generation: submit a job, poll it to completion, download the clip."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import requests
from google import genai
from google.genai import types

from framereel.config import Settings, get_settings
from framereel.errors import FetchError, GenerationError
from framereel.models import ClipArtifact

logger = logging.getLogger(__name__)


def fetch_artifact(uri: str, api_key: str, timeout_s: float = 120.0) -> ClipArtifact:
    """Download the clip at *uri* into a temp file.

    The key is passed as the ``key`` query parameter, which the Gemini file
    endpoint accepts for generated media.

    Raises
    ------
    FetchError
        ``not_found=True`` on HTTP 404 (usually an invalid or revoked key),
        otherwise on any other HTTP or transport failure.
    """
    try:
        with requests.get(uri, params={"key": api_key}, stream=True, timeout=timeout_s) as r:
            if r.status_code == 404:
                raise FetchError("HTTP 404", not_found=True)
            if not r.ok:
                raise FetchError(f"HTTP {r.status_code} {r.reason}")

            fd, tmp_path = tempfile.mkstemp(prefix="framereel-clip-", suffix=".mp4")
            size = 0
            try:
                with os.fdopen(fd, "wb") as fh:
                    for chunk in r.iter_content(chunk_size=1 << 20):
                        fh.write(chunk)
                        size += len(chunk)
            except BaseException:
                os.unlink(tmp_path)
                raise
    except requests.RequestException as exc:
        raise FetchError(str(exc)) from exc

    logger.debug("Fetched clip %s (%d bytes)", tmp_path, size)
    return ClipArtifact(path=Path(tmp_path), size_bytes=size)


class VideoGenerator:
    """Turns a text prompt into a locally stored clip.

    Usage::

        generator = VideoGenerator(get_genai_client(key), key)
        clip = await generator.generate("A red kite over a windy beach at dusk.")

    """

    def __init__(
        self,
        client: genai.Client,
        api_key: str,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self._client = client
        self._api_key = api_key
        self.model = settings.video_model
        self.resolution = settings.video_resolution
        self.aspect_ratio = settings.video_aspect_ratio
        self.poll_interval_s = settings.poll_interval_s
        self.max_poll_attempts = settings.max_poll_attempts
        self.fetch_timeout_s = settings.fetch_timeout_s

    async def generate(self, prompt: str) -> ClipArtifact:
        """Submit, wait for and download one clip for *prompt*.

        Raises
        ------
        GenerationError
            If submission or polling fails, the job ends in error, the poll
            limit is exceeded, or the finished job carries no video reference.
        FetchError
            If the clip cannot be downloaded.
        """
        operation = await self.submit(prompt)
        operation = await self.wait(operation)
        uri = self.result_uri(operation)
        return await asyncio.to_thread(fetch_artifact, uri, self._api_key, self.fetch_timeout_s)

    async def submit(self, prompt: str) -> types.GenerateVideosOperation:
        try:
            return await self._client.aio.models.generate_videos(
                model=self.model,
                prompt=prompt,
                config=types.GenerateVideosConfig(
                    number_of_videos=1,
                    resolution=self.resolution,
                    aspect_ratio=self.aspect_ratio,
                ),
            )
        except Exception as exc:
            raise GenerationError(f"job submission failed: {exc}") from exc

    async def wait(self, operation: types.GenerateVideosOperation) -> types.GenerateVideosOperation:
        """Poll *operation* every ``poll_interval_s`` until it is done.

        With ``max_poll_attempts`` unset this polls for as long as the job runs.
        """
        attempts = 0
        while not operation.done:
            if self.max_poll_attempts is not None and attempts >= self.max_poll_attempts:
                raise GenerationError(
                    f"job still running after {attempts} polls ({attempts * self.poll_interval_s:.0f}s)"
                )
            await asyncio.sleep(self.poll_interval_s)
            attempts += 1
            try:
                operation = await self._client.aio.operations.get(operation)
            except Exception as exc:
                raise GenerationError(f"polling failed: {exc}") from exc
            logger.debug("Poll %d for %s: done=%s", attempts, operation.name, operation.done)
        return operation

    @staticmethod
    def result_uri(operation: types.GenerateVideosOperation) -> str:
        """Return the download URI of the first generated video."""
        if operation.error:
            raise GenerationError(f"job finished with an error: {operation.error}")
        response = operation.response
        videos = response.generated_videos if response is not None else None
        video = videos[0].video if videos else None
        if video is None or not video.uri:
            raise GenerationError("the finished job did not return a video URI")
        return video.uri
