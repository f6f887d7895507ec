from __future__ import annotations

from dataclasses import asdict, dataclass, replace


@dataclass(frozen=True)
class HubRuntimeConfig:
    config_path: str | None = None
    configdir: str | None = None
    identity_path: str | None = None
    listen_ip: str = "0.0.0.0"
    listen_port: int = 4242
    dest_name: str = "roomhub.chat"
    announce_on_start: bool = True
    announce_period_s: float = 0.0
    hub_name: str = "roomhub"
    history_max_messages: int = 1000
    recent_messages: int = 50
    page_size_default: int = 20
    max_page_size: int = 100
    max_username_chars: int = 32
    max_room_name_len: int = 64
    max_message_chars: int = 4000
    enable_uploads: bool = True
    upload_dir: str | None = None
    upload_base_url: str | None = None
    max_upload_bytes: int = 8 * 1024 * 1024  # 8 MiB default
    max_pending_uploads: int = 4
    upload_expectation_ttl_s: float = 60.0
    max_resource_bytes: int = 1024 * 1024  # outbound event payloads
    log_level: str = "INFO"
    log_rns_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOG_TABLE_KEYS = {
    "level": "log_level",
    "rns_level": "log_rns_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_EMPTY_MEANS_NONE = ("configdir", "upload_dir", "upload_base_url", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def apply_config_data(cfg: HubRuntimeConfig, data: dict) -> HubRuntimeConfig:
    """Overlay values from a parsed TOML document onto `cfg`.

    Keys may live at top level or under [hub]; [logging] uses short names.
    Unknown keys are ignored.
    """
    if not isinstance(data, dict):
        return cfg

    hub = data.get("hub")
    if isinstance(hub, dict):
        data = {**data, **hub}

    log_table = data.get("logging")
    if isinstance(log_table, dict):
        mapped = {
            field: log_table[key]
            for key, field in _LOG_TABLE_KEYS.items()
            if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(cfg).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _EMPTY_MEANS_NONE:
        if key in updates and updates[key] == "":
            updates[key] = None

    if "listen_port" in updates:
        updates["listen_port"] = int(updates["listen_port"])

    return replace(cfg, **updates) if updates else cfg


def load_config_file(cfg: HubRuntimeConfig, path: str) -> HubRuntimeConfig:
    return apply_config_data(cfg, load_toml(path))
