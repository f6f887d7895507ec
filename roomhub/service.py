from __future__ import annotations

import logging
import os
import signal
import threading
import time
from pathlib import Path

import RNS

from .codec import encode
from .config import HubRuntimeConfig
from .messages import Outgoing
from .paths import default_reticulum_dir, default_upload_dir, ensure_private_dir
from .resources import ResourceManager
from .router import SessionRouter
from .stats import StatsManager
from .uploads import UploadStore
from .util import expand_path

_RETICULUM_CONFIG = """# Reticulum configuration managed by roomhub.
# Regenerated on every start from listen_ip / listen_port in roomhub.toml.
# Point roomhub at your own directory with --configdir to manage it yourself.

[reticulum]
  enable_transport = False
  share_instance = No

[logging]
  loglevel = 3

[interfaces]
  [[Room Hub TCP Server]]
    type = TCPServerInterface
    enabled = yes
    listen_ip = {listen_ip}
    listen_port = {listen_port}
"""


class HubService:
    def __init__(self, config: HubRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("roomhub.hub")

        self._shutdown = threading.Event()

        self.stats = StatsManager()

        # Chat state and event routing; owns the shared state lock.
        self.router = SessionRouter(config, stats=self.stats)

        self.upload_store = UploadStore(
            config.upload_dir or str(default_upload_dir()),
            base_url=config.upload_base_url,
        )

        # Uploads and oversized events over RNS.Resource
        self.resource_manager = ResourceManager(self)

        self.identity: RNS.Identity | None = None
        self.destination: RNS.Destination | None = None

        self._announce_thread: threading.Thread | None = None
        self._cleanup_thread: threading.Thread | None = None

    def _fmt_link_id(self, link) -> str:
        lid = getattr(link, "link_id", None)
        if isinstance(lid, (bytes, bytearray)):
            return bytes(lid).hex()
        return "-"

    def _prepare_reticulum_configdir(self) -> str:
        if self.config.configdir:
            return expand_path(self.config.configdir)

        configdir = default_reticulum_dir()
        ensure_private_dir(configdir)
        (configdir / "config").write_text(
            _RETICULUM_CONFIG.format(
                listen_ip=self.config.listen_ip,
                listen_port=int(self.config.listen_port),
            ),
            encoding="utf-8",
        )
        return str(configdir)

    def start(self) -> None:
        self.log.info("Starting Reticulum")
        self.stats.set_start_time()

        configdir = self._prepare_reticulum_configdir()
        RNS.Reticulum(configdir=configdir, require_shared_instance=False)

        if not self.config.identity_path:
            raise RuntimeError("identity_path is not set")
        self.identity = self._load_identity(self.config.identity_path)

        parts = [p for p in str(self.config.dest_name).split(".") if p]
        if not parts:
            raise ValueError("dest_name must not be empty")
        app_name, aspects = parts[0], parts[1:]

        self.destination = RNS.Destination(
            self.identity,
            RNS.Destination.IN,
            RNS.Destination.SINGLE,
            app_name,
            *aspects,
        )
        self.destination.set_link_established_callback(self._on_link)

        if self.config.announce_on_start:
            self._announce_once()

        if self.config.announce_period_s and self.config.announce_period_s > 0:
            self._announce_thread = threading.Thread(
                target=self._announce_loop, name="roomhub-announce", daemon=True
            )
            self._announce_thread.start()

        if self.config.enable_uploads:
            self._cleanup_thread = threading.Thread(
                target=self._cleanup_loop, name="roomhub-upload-cleanup", daemon=True
            )
            self._cleanup_thread.start()

        self.log.info(
            "Hub running dest_name=%s dest_hash=%s listen=%s:%s",
            self.config.dest_name,
            self.destination.hash.hex(),
            self.config.listen_ip,
            self.config.listen_port,
        )
        self.log.info(
            "Policy history_max_messages=%s recent_messages=%s max_username_chars=%s max_room_name_len=%s uploads=%s",
            self.config.history_max_messages,
            self.config.recent_messages,
            self.config.max_username_chars,
            self.config.max_room_name_len,
            self.config.enable_uploads,
        )

    def _announce_once(self) -> None:
        if self.destination is None:
            return
        try:
            self.destination.announce(
                app_data=encode({"proto": "roomhub", "v": 1, "hub": self.config.hub_name})
            )
        except Exception:
            self.log.exception("Announce failed")

    def _announce_loop(self) -> None:
        period = float(self.config.announce_period_s)
        while not self._shutdown.wait(period):
            self._announce_once()

    def _cleanup_loop(self) -> None:
        interval = max(1.0, float(self.config.upload_expectation_ttl_s) / 2)
        while not self._shutdown.wait(interval):
            self.resource_manager.cleanup_all_expired_expectations()

    def run_forever(self) -> None:
        if self.destination is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()

        links = self.router.clear_all()
        self.resource_manager.clear_all()

        for link in links:
            try:
                link.teardown()
            except Exception:
                self.log.debug(
                    "Teardown failed link_id=%s", self._fmt_link_id(link), exc_info=True
                )

        self.log.info("Hub stopped\n%s", self.stats.format_stats(self.router))

    def _load_identity(self, path: str) -> RNS.Identity:
        p = expand_path(path)
        if not os.path.exists(p):
            raise RuntimeError(f"Identity not found at {p}")
        ident = RNS.Identity.from_file(p)
        if ident is None:
            raise RuntimeError(f"Failed to load identity from {p}")
        return ident

    # Link callbacks

    def _on_link(self, link: RNS.Link) -> None:
        self.router.on_connect(link, conn_id=self._fmt_link_id(link))
        self.resource_manager.on_link_established(link)

        link.set_packet_callback(lambda data, pkt: self._on_packet(link, data))
        link.set_link_closed_callback(lambda closed_link: self._on_close(closed_link))
        self.resource_manager.configure_link_callbacks(link)

        self.log.info("Link established link_id=%s", self._fmt_link_id(link))

    def _on_packet(self, link: RNS.Link, data: bytes) -> None:
        # Packet callbacks run on RNS threads. The router decides the fan-out
        # under its lock; sending happens here, outside it.
        outgoing = self.router.route_packet(link, data)
        self.send_outgoing(outgoing)

    def _on_close(self, link: RNS.Link) -> None:
        self.resource_manager.on_link_closed(link)
        outgoing = self.router.on_disconnect(link)
        self.send_outgoing(outgoing)
        self.log.info("Link closed link_id=%s", self._fmt_link_id(link))

    def send_outgoing(self, outgoing: Outgoing) -> None:
        if self.log.isEnabledFor(logging.DEBUG) and outgoing:
            self.log.debug("Sending %d event(s)", len(outgoing))

        for out_link, payload in outgoing:
            if out_link.status == RNS.Link.CLOSED:
                continue

            mdu = getattr(out_link, "MDU", None)
            if mdu is not None and len(payload) > mdu:
                self.resource_manager.send_via_resource(out_link, payload)
                continue

            try:
                RNS.Packet(out_link, payload).send()
            except OSError as e:
                self.log.warning(
                    "Send failed link_id=%s bytes=%s err=%s",
                    self._fmt_link_id(out_link),
                    len(payload),
                    e,
                )
            except Exception:
                self.log.debug(
                    "Send failed link_id=%s bytes=%s",
                    self._fmt_link_id(out_link),
                    len(payload),
                    exc_info=True,
                )


def ensure_identity_file(path: str) -> bool:
    """Create a Reticulum identity at `path` if none exists. Returns True if created."""
    p = Path(expand_path(path))
    if p.exists():
        return False
    ensure_private_dir(p.parent)
    RNS.Identity().to_file(str(p))
    try:
        os.chmod(p, 0o600)
    except OSError:
        pass
    return True
