"""Still capture from a positioned decoding handle."""

from __future__ import annotations

import cv2

from framereel.errors import CaptureSurfaceError
from framereel.extraction.media import MediaHandle


def check_capture_surface(handle: MediaHandle) -> tuple[int, int]:
    """Return ``(width, height)`` of the capture surface for *handle*.

    Raises ``CaptureSurfaceError`` when the decoder reports zero dimensions,
    which means the source never actually loaded.
    """
    if handle.width <= 0 or handle.height <= 0:
        raise CaptureSurfaceError(f"decoder reports {handle.width}x{handle.height} pixels")
    return handle.width, handle.height


def capture(handle: MediaHandle, quality: int = 92) -> bytes:
    """Encode the currently decoded picture of *handle* as a JPEG.

    Must only be called after ``await handle.seek(...)`` has returned.  The
    output is at the source's native resolution.

    Raises
    ------
    CaptureSurfaceError
        If the surface has no size, nothing has been decoded yet, or
        encoding fails.
    """
    width, height = check_capture_surface(handle)
    picture = handle.picture()
    if picture is None:
        raise CaptureSurfaceError("no decoded picture is available")

    if picture.shape[1] != width or picture.shape[0] != height:
        picture = cv2.resize(picture, (width, height), interpolation=cv2.INTER_AREA)

    ok, buf = cv2.imencode(".jpg", picture, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise CaptureSurfaceError("JPEG encoding failed")
    return buf.tobytes()
