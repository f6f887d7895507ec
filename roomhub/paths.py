from __future__ import annotations

import os
from pathlib import Path


def default_roomhub_dir() -> Path:
    override = os.environ.get("ROOMHUB_HOME")
    if override:
        return Path(override)
    return Path.home() / ".roomhub"


def default_config_path() -> Path:
    return default_roomhub_dir() / "roomhub.toml"


def default_identity_path() -> Path:
    return default_roomhub_dir() / "hub_identity"


def default_upload_dir() -> Path:
    return default_roomhub_dir() / "uploads"


def default_reticulum_dir() -> Path:
    return default_roomhub_dir() / "reticulum"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        # Some filesystems do not support POSIX modes.
        pass
