"""Best-effort pixel size detection for images wrapped in links.

Sizes come from three places, each overriding the previous one per axis:
the image header itself (a local file below the document root, or the first
few kilobytes of a remote image), the ``width``/``height`` attributes and
finally ``width``/``height`` declarations in an inline ``style``. Nothing in
here raises for unreachable, slow or broken images; unknown sizes are ``0``.
"""

from __future__ import annotations

import http.client
import logging
import os
import re
import tempfile
import time
import urllib.request
from pathlib import Path
from typing import IO, Optional, Tuple
from urllib.parse import unquote, urlsplit

from PIL import Image

from .conf import DEFAULT_MAX_REMOTE_BYTES, DEFAULT_REMOTE_TIMEOUT
from .types import ImageDimensions

logger = logging.getLogger(__name__)

# Approximate pixel equivalents; unknown units keep the raw number.
UNIT_MULTIPLIERS: dict[str, int] = {"px": 1, "pt": 12, "ex": 6, "em": 12, "rem": 12}

STYLE_TEMPLATE = r"{prop}:\s*(\d+)([a-z]+)"
WIDTH_STYLE = re.compile(STYLE_TEMPLATE.format(prop="width"), re.IGNORECASE)
HEIGHT_STYLE = re.compile(STYLE_TEMPLATE.format(prop="height"), re.IGNORECASE)
LEADING_NUMBER = re.compile(r"^\s*(\d+)")

USER_AGENT = "django-external-links/1.0 (+image size probe)"
CHUNK_SIZE = 4096
REMOTE_SCHEMES = {"http", "https"}

_DECODE_ERRORS: Tuple[type[BaseException], ...] = (OSError, ValueError, Image.DecompressionBombError)


def style_dimension(style: str | None, pattern: re.Pattern[str]) -> Optional[int]:
    """Return the pixel value of the first matching style declaration."""

    if not style:
        return None
    match = pattern.search(style)
    if not match:
        return None
    value = int(match.group(1))
    return value * UNIT_MULTIPLIERS.get(match.group(2).lower(), 1)


def attribute_dimension(value: object) -> Optional[int]:
    """Parse the leading integer of a ``width``/``height`` attribute."""

    if value is None:
        return None
    match = LEADING_NUMBER.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def read_image_size(source: str | Path | IO[bytes]) -> ImageDimensions:
    """Sniff the header of ``source``; only the bytes Pillow needs are read."""

    try:
        with Image.open(source) as image:
            width, height = image.size
    except _DECODE_ERRORS as exc:
        logger.debug("Unable to decode image header: %s", exc)
        return ImageDimensions()
    return ImageDimensions(int(width), int(height))


class ImageSizeProber:
    """Determine image dimensions from local files, remote prefixes and hints."""

    def __init__(
        self,
        document_root: str | Path = "",
        *,
        max_remote_bytes: int = DEFAULT_MAX_REMOTE_BYTES,
        timeout: float = DEFAULT_REMOTE_TIMEOUT,
    ) -> None:
        self.document_root = Path(document_root or os.curdir)
        self.max_remote_bytes = max_remote_bytes
        self.timeout = timeout

    def probe(
        self,
        image_ref: str | None,
        style: str | None = None,
        width: object = None,
        height: object = None,
        max_remote_bytes: int | None = None,
    ) -> ImageDimensions:
        """Return the best known dimensions for an image reference."""

        hinted_width = style_dimension(style, WIDTH_STYLE)
        if hinted_width is None:
            hinted_width = attribute_dimension(width)
        hinted_height = style_dimension(style, HEIGHT_STYLE)
        if hinted_height is None:
            hinted_height = attribute_dimension(height)

        intrinsic = ImageDimensions()
        if image_ref and (hinted_width is None or hinted_height is None):
            intrinsic = self.intrinsic_size(image_ref, max_remote_bytes)

        return ImageDimensions(
            width=intrinsic.width if hinted_width is None else hinted_width,
            height=intrinsic.height if hinted_height is None else hinted_height,
        )

    def intrinsic_size(self, image_ref: str, max_remote_bytes: int | None = None) -> ImageDimensions:
        local = self.local_path(image_ref)
        if local is not None:
            return read_image_size(local)
        limit = self.max_remote_bytes if max_remote_bytes is None else max_remote_bytes
        return self.remote_size(image_ref, limit)

    def local_path(self, image_ref: str) -> Optional[Path]:
        """Return the file below the document root named by ``image_ref``."""

        parts = urlsplit(image_ref)
        if parts.scheme or parts.netloc:
            return None
        candidate = self.document_root / unquote(parts.path).lstrip("/")
        try:
            if candidate.is_file():
                return candidate
        except (OSError, ValueError):
            return None
        return None

    def remote_size(self, image_ref: str, max_bytes: int) -> ImageDimensions:
        """Decode the dimensions from at most ``max_bytes`` of a remote image."""

        # Relative references that are not local files are never fetched back
        # from the site itself.
        url = image_ref
        parts = urlsplit(url)
        if parts.scheme.lower() not in REMOTE_SCHEMES or not parts.netloc:
            logger.debug("Not probing %s: not an absolute http(s) URL", image_ref)
            return ImageDimensions()

        headers = {"User-Agent": USER_AGENT}
        if max_bytes > 0:
            headers["Range"] = f"bytes=0-{max_bytes - 1}"
        request = urllib.request.Request(url, headers=headers)
        deadline = time.monotonic() + self.timeout

        try:
            with tempfile.TemporaryFile(prefix="gis") as sink:
                with urllib.request.urlopen(request, timeout=self.timeout) as response:
                    received = _copy_bounded(response, sink, max_bytes, deadline)
                if received is None:
                    logger.debug("Timed out probing %s after %.1fs", url, self.timeout)
                    return ImageDimensions()
                if received == 0:
                    return ImageDimensions()
                sink.seek(0)
                return read_image_size(sink)
        except (OSError, ValueError, http.client.HTTPException) as exc:
            logger.debug("Failed to fetch %s: %s", url, exc)
            return ImageDimensions()


def _copy_bounded(response: IO[bytes], sink: IO[bytes], max_bytes: int, deadline: float) -> Optional[int]:
    """Copy up to ``max_bytes`` from ``response`` into ``sink``.

    Returns the number of bytes written, or ``None`` when ``deadline`` passed
    before the transfer finished. Each read returns whatever has arrived and
    waits on the socket no longer than the time left.
    """

    read = getattr(response, "read1", response.read)
    received = 0
    while max_bytes <= 0 or received < max_bytes:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        _limit_socket_timeout(response, remaining)
        size = CHUNK_SIZE if max_bytes <= 0 else min(CHUNK_SIZE, max_bytes - received)
        try:
            chunk = read(size)
        except TimeoutError:
            return None
        if not chunk:
            break
        sink.write(chunk)
        received += len(chunk)
    return received


def _limit_socket_timeout(response: IO[bytes], seconds: float) -> None:
    # HTTPResponse.fp is a buffered reader over a SocketIO holding the socket.
    sock = getattr(getattr(getattr(response, "fp", None), "raw", None), "_sock", None)
    if sock is not None:
        sock.settimeout(seconds)
