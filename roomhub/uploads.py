"""Blob storage for uploaded files.

The chat core never looks inside a file: it only keeps the `{url, name}`
reference handed back by this store.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from urllib.parse import quote

from .envelope import now_ms
from .util import expand_path

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(name: str, *, max_chars: int = 128) -> str:
    base = os.path.basename(str(name).replace("\\", "/")).strip()
    base = _UNSAFE.sub("_", base).strip("._")
    if not base:
        return "file"
    return base[-max_chars:]


class UploadStore:
    """Writes uploaded blobs to a directory and hands back a URL for each."""

    def __init__(self, directory: str, *, base_url: str | None = None) -> None:
        self.log = logging.getLogger("roomhub.uploads")
        self.directory = Path(expand_path(directory))
        self.base_url = base_url.rstrip("/") if base_url else None

    def save(self, name: str, data: bytes) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)

        filename = f"{now_ms()}-{sanitize_filename(name)}"
        path = self.directory / filename
        # Two uploads of the same name in the same millisecond.
        n = 1
        while path.exists():
            path = self.directory / f"{filename}.{n}"
            n += 1

        path.write_bytes(data)
        url = self.url_for(path.name)
        self.log.info("Stored upload name=%r bytes=%s url=%s", name, len(data), url)
        return url

    def url_for(self, filename: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{quote(filename)}"
        return (self.directory / filename).resolve().as_uri()
