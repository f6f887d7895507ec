from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

from .config import HubRuntimeConfig, load_config_file
from .logging_config import configure_logging
from .paths import (
    default_config_path,
    default_identity_path,
    default_upload_dir,
    ensure_private_dir,
)


def _write_default_config(config_path: str, identity_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    upload_dir = str(default_upload_dir())

    content = f"""# roomhub configuration (TOML)
#
# This file was created on first run. Every setting has a default; the
# listen port is the only one most deployments change.

[hub]

# TCP port (and address) the hub accepts Reticulum connections on.
listen_port = 4242
listen_ip = "0.0.0.0"

# Optional: your own Reticulum configuration directory. When empty, roomhub
# generates one under ~/.roomhub/reticulum with a TCP server interface on
# listen_ip:listen_port.
configdir = ""

# Where roomhub stores its persistent identity (Reticulum Identity file).
identity_path = {identity_path!r}

# Destination name to host the hub on, and the name sent in announces.
dest_name = "roomhub.chat"
hub_name = "roomhub"
announce_on_start = true
announce_period_s = 0.0

# History kept in memory, per room. Oldest messages are evicted first.
history_max_messages = 1000

# Messages sent with joined/roomJoined, and the loadMore page sizes.
recent_messages = 50
page_size_default = 20
max_page_size = 100

# Limits.
max_username_chars = 32
max_room_name_len = 64
max_message_chars = 4000

# File uploads (sent as RNS Resources after an `upload` event).
# upload_base_url: prefix for URLs handed to clients; when empty a file:// URL
# of the stored blob is used.
enable_uploads = true
upload_dir = {upload_dir!r}
upload_base_url = ""
max_upload_bytes = {8 * 1024 * 1024}
max_pending_uploads = 4
upload_expectation_ttl_s = 60.0

# Largest single event sent as a Resource when it does not fit in a packet.
max_resource_bytes = {1024 * 1024}

[logging]

# Log level for roomhub itself.
level = "INFO"

# Log level for Reticulum/RNS Python logging.
rns_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


def _ensure_first_run_files(config_path: str, identity_path: str) -> list[str]:
    from .service import ensure_identity_file

    created: list[str] = []

    if not os.path.exists(config_path):
        _write_default_config(config_path, identity_path)
        created.append(config_path)

    if ensure_identity_file(identity_path):
        created.append(identity_path)

    return created


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="roomhub", description="Run a room chat hub")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--port", type=int, default=None, help="TCP listen port (default: 4242)"
    )
    p.add_argument("--listen-ip", default=None, help="TCP listen address")
    p.add_argument(
        "--configdir",
        default=None,
        help="Reticulum config directory (default: generated by roomhub)",
    )
    p.add_argument(
        "--identity",
        default=str(default_identity_path()),
        help="Path to hub identity file (created on first run)",
    )
    p.add_argument(
        "--dest-name", default=None, help="Destination app name (default: roomhub.chat)"
    )
    p.add_argument(
        "--no-announce",
        action="store_true",
        help="Disable announce on start (does not affect periodic announce)",
    )
    p.add_argument("--hub-name", default=None, help="Hub name in announces")
    p.add_argument(
        "--history-max",
        type=int,
        default=None,
        help="Messages kept in memory per room",
    )
    p.add_argument("--upload-dir", default=None, help="Directory for uploaded files")
    p.add_argument(
        "--upload-base-url", default=None, help="URL prefix for uploaded files"
    )
    p.add_argument(
        "--no-uploads", action="store_true", help="Refuse file uploads"
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> HubRuntimeConfig:
    config_path = str(args.config)

    cfg = HubRuntimeConfig(
        config_path=config_path, identity_path=str(args.identity)
    )
    if config_path and os.path.exists(config_path):
        cfg = load_config_file(cfg, config_path)

    if args.port is not None:
        cfg = replace(cfg, listen_port=int(args.port))
    if args.listen_ip is not None:
        cfg = replace(cfg, listen_ip=str(args.listen_ip))
    if args.configdir is not None:
        cfg = replace(cfg, configdir=args.configdir or None)
    if args.dest_name is not None:
        cfg = replace(cfg, dest_name=args.dest_name)
    if args.no_announce:
        cfg = replace(cfg, announce_on_start=False)
    if args.hub_name is not None:
        cfg = replace(cfg, hub_name=args.hub_name)
    if args.history_max is not None:
        cfg = replace(cfg, history_max_messages=int(args.history_max))
    if args.upload_dir is not None:
        cfg = replace(cfg, upload_dir=args.upload_dir or None)
    if args.upload_base_url is not None:
        cfg = replace(cfg, upload_base_url=args.upload_base_url or None)
    if args.no_uploads:
        cfg = replace(cfg, enable_uploads=False)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) or None)

    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    created = _ensure_first_run_files(str(args.config), str(args.identity))
    if created:
        print(
            "Created default roomhub files:\n"
            + "".join(f"- {p}\n" for p in created),
            file=sys.stderr,
        )

    cfg = build_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    from .service import HubService

    svc = HubService(cfg)
    svc.start()
    svc.run_forever()


if __name__ == "__main__":
    main()
