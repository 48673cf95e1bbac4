"""Unit tests for framereel.generation.video.

The Veo client is a ``MagicMock`` with ``AsyncMock`` endpoints and the
download goes through a patched ``requests.get``; nothing leaves the process.
"""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests

from framereel.config import Settings
from framereel.errors import FetchError, GenerationError
from framereel.generation.video import VideoGenerator, fetch_artifact
from framereel.models import ClipArtifact

URI = "https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media"


def _operation(done: bool, uri: str | None = URI, error=None) -> SimpleNamespace:
    videos = [SimpleNamespace(video=SimpleNamespace(uri=uri))] if done else None
    return SimpleNamespace(
        name="operations/abc",
        done=done,
        error=error,
        response=SimpleNamespace(generated_videos=videos) if done else None,
    )


def _client(submitted, polls) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_videos = AsyncMock(return_value=submitted)
    client.aio.operations.get = AsyncMock(side_effect=polls)
    return client


# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------

class TestVideoGenerator:
    @pytest.mark.asyncio
    async def test_submit_poll_fetch(self, tmp_path: Path) -> None:
        client = _client(_operation(False), [_operation(False), _operation(True)])
        generator = VideoGenerator(client, "secret", Settings(poll_interval_s=0.001))
        clip = ClipArtifact(path=tmp_path / "clip.mp4", size_bytes=10)

        with patch("framereel.generation.video.fetch_artifact", return_value=clip) as fetch:
            result = await generator.generate("A red kite over a beach.")

        assert result is clip
        assert client.aio.operations.get.await_count == 2
        fetch.assert_called_once_with(URI, "secret", generator.fetch_timeout_s)

        kwargs = client.aio.models.generate_videos.await_args.kwargs
        assert kwargs["prompt"] == "A red kite over a beach."
        assert kwargs["model"] == generator.model
        assert kwargs["config"].number_of_videos == 1
        assert kwargs["config"].resolution == "720p"
        assert kwargs["config"].aspect_ratio == "16:9"

    @pytest.mark.asyncio
    async def test_missing_uri_is_generation_error(self) -> None:
        client = _client(_operation(False), [_operation(True, uri=None)])
        generator = VideoGenerator(client, "secret", Settings(poll_interval_s=0.001))

        with pytest.raises(GenerationError, match="did not return a video URI"):
            await generator.generate("prompt")

    @pytest.mark.asyncio
    async def test_no_generated_videos_is_generation_error(self) -> None:
        finished = _operation(True)
        finished.response = SimpleNamespace(generated_videos=[])
        generator = VideoGenerator(_client(finished, []), "secret", Settings(poll_interval_s=0.001))

        with pytest.raises(GenerationError):
            await generator.generate("prompt")

    @pytest.mark.asyncio
    async def test_job_error_is_generation_error(self) -> None:
        client = _client(_operation(False), [_operation(True, error={"code": 3, "message": "unsafe prompt"})])
        generator = VideoGenerator(client, "secret", Settings(poll_interval_s=0.001))

        with pytest.raises(GenerationError, match="unsafe prompt"):
            await generator.generate("prompt")

    @pytest.mark.asyncio
    async def test_poll_limit(self) -> None:
        client = _client(_operation(False), [_operation(False)] * 5)
        generator = VideoGenerator(client, "secret", Settings(poll_interval_s=0.001, max_poll_attempts=3))

        with pytest.raises(GenerationError, match="after 3 polls"):
            await generator.generate("prompt")
        assert client.aio.operations.get.await_count == 3

    @pytest.mark.asyncio
    async def test_submission_failure(self) -> None:
        client = MagicMock()
        client.aio.models.generate_videos = AsyncMock(side_effect=RuntimeError("PERMISSION_DENIED"))
        generator = VideoGenerator(client, "secret", Settings(poll_interval_s=0.001))

        with pytest.raises(GenerationError, match="PERMISSION_DENIED"):
            await generator.generate("prompt")

    @pytest.mark.asyncio
    async def test_polling_failure(self) -> None:
        client = _client(_operation(False), RuntimeError("connection reset"))
        generator = VideoGenerator(client, "secret", Settings(poll_interval_s=0.001))

        with pytest.raises(GenerationError, match="polling failed"):
            await generator.generate("prompt")


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

def _response(status_code: int, chunks=(), reason: str = "") -> MagicMock:
    response = MagicMock()
    response.__enter__.return_value = response
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = reason
    response.iter_content.return_value = iter(chunks)
    return response


class TestFetchArtifact:
    def test_writes_temp_file(self) -> None:
        response = _response(200, [b"\x00\x00\x00\x18", b"ftypmp42"])
        with patch("framereel.generation.video.requests.get", return_value=response) as get:
            clip = fetch_artifact(URI, "secret", timeout_s=5.0)

        try:
            assert clip.path.read_bytes() == b"\x00\x00\x00\x18ftypmp42"
            assert clip.size_bytes == 12
            assert clip.path.suffix == ".mp4"
            assert get.call_args.kwargs["params"] == {"key": "secret"}
            assert get.call_args.kwargs["stream"] is True
        finally:
            clip.release()
        assert not clip.path.exists()
        assert clip.released

    def test_404_is_not_found(self) -> None:
        with patch("framereel.generation.video.requests.get", return_value=_response(404, reason="Not Found")):
            with pytest.raises(FetchError) as exc_info:
                fetch_artifact(URI, "revoked")
        assert exc_info.value.not_found is True
        assert "select it again" in str(exc_info.value)

    def test_server_error(self) -> None:
        with patch(
            "framereel.generation.video.requests.get",
            return_value=_response(500, reason="Internal Server Error"),
        ):
            with pytest.raises(FetchError) as exc_info:
                fetch_artifact(URI, "secret")
        assert exc_info.value.not_found is False
        assert "500" in str(exc_info.value)

    def test_transport_error(self) -> None:
        with patch(
            "framereel.generation.video.requests.get",
            side_effect=requests.ConnectionError("name resolution failed"),
        ):
            with pytest.raises(FetchError, match="name resolution failed"):
                fetch_artifact(URI, "secret")
