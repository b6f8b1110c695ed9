"""Pytest configuration and fixtures shared across test modules."""

from __future__ import annotations

import io
import os
import time
from pathlib import Path
from typing import Any

import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "external_links_site.settings")
os.environ.setdefault("DJANGO_SECRET_KEY", "test-secret")
os.environ.setdefault("DJANGO_DEBUG", "true")

from PIL import Image  # noqa: E402

from external_links.conf import LinkConfig, load_config  # noqa: E402


def make_config(**overrides: Any) -> LinkConfig:
    """Return the default configuration with ``overrides`` merged on top."""

    return load_config(None, overrides)


def png_bytes(width: int, height: int, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 40, 40)).save(buffer, format=fmt)
    return buffer.getvalue()


def write_image(directory: Path, name: str, width: int, height: int, fmt: str = "PNG") -> Path:
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(png_bytes(width, height, fmt))
    return path


class FakeResponse:
    """Minimal stand-in for the object returned by ``urllib.request.urlopen``."""

    def __init__(self, body: bytes = b"", *, endless: bytes | None = None, delay: float = 0.0) -> None:
        self.body = body
        self.endless = endless
        self.delay = delay
        self.offset = 0
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        if self.delay:
            time.sleep(self.delay)
        if self.endless is not None:
            chunk = (self.endless * (size // len(self.endless) + 1))[:size]
        else:
            end = len(self.body) if size < 0 else self.offset + size
            chunk = self.body[self.offset:end]
            self.offset += len(chunk)
        self.bytes_read += len(chunk)
        return chunk

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


@pytest.fixture()
def site_config(tmp_path: Path) -> LinkConfig:
    """Defaults rooted in a temporary document root with a known base URL."""

    return make_config(base_url="https://mysite.test", document_root=str(tmp_path))
