"""Resource transfer management for the room hub.

Two directions go over RNS Resources:
- inbound file uploads, announced by an `upload` event and stored through
  the UploadStore
- outbound events too large for a single packet on the link
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import RNS

from .codec import encode
from .constants import (
    B_RES_ID,
    B_RES_NAME,
    B_RES_SHA256,
    B_RES_SIZE,
    T_RESOURCE_ENVELOPE,
    T_UPLOAD,
    T_UPLOADED,
)
from .envelope import make_envelope

if TYPE_CHECKING:
    from .messages import Outgoing
    from .service import HubService
    from .session import Session


@dataclass
class _UploadExpectation:
    """Tracks an announced upload that has not arrived yet."""

    id: bytes
    name: str
    size: int
    sha256: bytes | None
    created_at: float
    expires_at: float


class ResourceManager:
    """Manages RNS Resource transfers for the hub."""

    def __init__(self, hub: HubService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomhub.resources")

        self._expectations: dict[RNS.Link, dict[bytes, _UploadExpectation]] = {}
        # Outbound transfers in flight, per link.
        self._active: dict[RNS.Link, set[RNS.Resource]] = {}

        hub.router.register_handler(T_UPLOAD, self._handle_upload)

    @property
    def _lock(self):
        return self.hub.router.lock

    def on_link_established(self, link: RNS.Link) -> None:
        with self._lock:
            self._expectations[link] = {}
            self._active[link] = set()

    def on_link_closed(self, link: RNS.Link) -> None:
        with self._lock:
            self._expectations.pop(link, None)
            self._active.pop(link, None)

    def clear_all(self) -> None:
        with self._lock:
            self._expectations.clear()
            self._active.clear()

    def configure_link_callbacks(self, link: RNS.Link) -> None:
        """Set up resource callbacks for a link if uploads are enabled."""
        if not self.hub.config.enable_uploads:
            return

        link.set_resource_strategy(RNS.Link.ACCEPT_APP)
        link.set_resource_callback(lambda adv: self._resource_advertised(link, adv))
        link.set_resource_concluded_callback(
            lambda resource: self._resource_concluded(link, resource)
        )
        self.log.debug(
            "Resource callbacks configured link_id=%s", self.hub._fmt_link_id(link)
        )

    # Upload expectations

    def _handle_upload(self, sess: Session, body: dict, outgoing: Outgoing) -> None:
        """Router handler for `upload`. Runs with the state lock held."""
        link = sess.connection
        helper = self.hub.router.message_helper

        if not self.hub.config.enable_uploads:
            helper.emit_error(outgoing, link, "uploads disabled")
            return

        rid = body.get(B_RES_ID)
        name = body.get(B_RES_NAME)
        size = body.get(B_RES_SIZE)
        sha256 = body.get(B_RES_SHA256)

        if not isinstance(rid, (bytes, bytearray)) or not rid:
            helper.emit_error(outgoing, link, "upload missing id")
            return
        if not isinstance(name, str) or not name.strip():
            helper.emit_error(outgoing, link, "upload missing name")
            return
        if not isinstance(size, int) or size <= 0:
            helper.emit_error(outgoing, link, "upload invalid size")
            return
        if size > int(self.hub.config.max_upload_bytes):
            helper.emit_error(
                outgoing,
                link,
                f"upload too large: {size} > {self.hub.config.max_upload_bytes}",
            )
            return
        if sha256 is not None and not isinstance(sha256, (bytes, bytearray)):
            helper.emit_error(outgoing, link, "upload invalid sha256")
            return

        self.cleanup_expired_expectations(link)
        pending = self._expectations.setdefault(link, {})
        if len(pending) >= int(self.hub.config.max_pending_uploads):
            helper.emit_error(outgoing, link, "too many pending uploads")
            return

        now = time.time()
        pending[bytes(rid)] = _UploadExpectation(
            id=bytes(rid),
            name=name.strip(),
            size=size,
            sha256=bytes(sha256) if sha256 else None,
            created_at=now,
            expires_at=now + float(self.hub.config.upload_expectation_ttl_s),
        )
        self.log.debug(
            "Expecting upload link_id=%s rid=%s name=%r size=%s",
            self.hub._fmt_link_id(link),
            bytes(rid).hex(),
            name,
            size,
        )

    def cleanup_expired_expectations(self, link: RNS.Link) -> None:
        """Must be called with the state lock held."""
        pending = self._expectations.get(link)
        if not pending:
            return
        now = time.time()
        for rid in [rid for rid, exp in pending.items() if exp.expires_at <= now]:
            pending.pop(rid, None)
            self.log.debug(
                "Expired upload expectation link_id=%s rid=%s",
                self.hub._fmt_link_id(link),
                rid.hex(),
            )

    def cleanup_all_expired_expectations(self) -> None:
        with self._lock:
            for link in list(self._expectations):
                self.cleanup_expired_expectations(link)

    def match_expectation(
        self, link: RNS.Link, *, size: int, sha256: bytes | None
    ) -> _UploadExpectation | None:
        """Find the expectation a resource satisfies.

        First size match whose sha256 (if announced) agrees wins.
        """
        self.cleanup_expired_expectations(link)
        pending = self._expectations.get(link)
        if not pending:
            return None

        for exp in pending.values():
            if exp.size != size:
                continue
            if exp.sha256 and sha256 and exp.sha256 != sha256:
                continue
            return exp
        return None

    # Resource callbacks

    def _resource_advertised(self, link: RNS.Link, adv) -> bool:
        """Accept only announced uploads from logged-in sessions."""
        if hasattr(adv, "get_data_size"):
            size = adv.get_data_size()
        else:
            size = getattr(adv, "total_size", None) or getattr(adv, "size", 0)

        if size > int(self.hub.config.max_upload_bytes):
            self.log.warning(
                "Rejecting resource (too large: %s > %s) link_id=%s",
                size,
                self.hub.config.max_upload_bytes,
                self.hub._fmt_link_id(link),
            )
            self.hub.stats.inc("uploads_rejected")
            return False

        with self._lock:
            username = self.hub.router.identities.who_is(link)
            exp = self.match_expectation(link, size=size, sha256=None)
            if username is None or exp is None:
                self.log.warning(
                    "Rejecting resource (no matching upload) link_id=%s size=%s",
                    self.hub._fmt_link_id(link),
                    size,
                )
                self.hub.stats.inc("uploads_rejected")
                return False

        self.log.info(
            "Accepting upload link_id=%s username=%r name=%r size=%s",
            self.hub._fmt_link_id(link),
            username,
            exp.name,
            size,
        )
        return True

    def _resource_concluded(self, link: RNS.Link, resource: RNS.Resource) -> None:
        if resource.status != RNS.Resource.COMPLETE:
            self.log.warning(
                "Upload transfer failed link_id=%s status=%s",
                self.hub._fmt_link_id(link),
                resource.status,
            )
            return

        data = resource.data.read() if hasattr(resource.data, "read") else resource.data
        payload = bytes(data)
        actual_hash = hashlib.sha256(payload).digest()

        with self._lock:
            # A sha256 mismatch matches nothing and leaves the expectation for a retry.
            exp = self.match_expectation(link, size=len(payload), sha256=actual_hash)
            if exp is None:
                self.log.warning(
                    "Received resource without upload link_id=%s size=%s",
                    self.hub._fmt_link_id(link),
                    len(payload),
                )
                self.hub.stats.inc("uploads_rejected")
                return

            self._expectations.get(link, {}).pop(exp.id, None)

        outgoing: Outgoing = []
        try:
            url = self.hub.upload_store.save(exp.name, payload)
        except OSError as e:
            self.log.error(
                "Failed to store upload link_id=%s name=%r: %s",
                self.hub._fmt_link_id(link),
                exp.name,
                e,
            )
            self.hub.stats.inc("uploads_rejected")
            with self._lock:
                self.hub.router.message_helper.emit_error(
                    outgoing, link, f"upload failed: {exp.name}"
                )
            self.hub.send_outgoing(outgoing)
            return
        self.hub.stats.inc("uploads_received")

        with self._lock:
            self.hub.router.message_helper.queue_event(
                outgoing,
                link,
                T_UPLOADED,
                {B_RES_ID: exp.id, "url": url, "name": exp.name},
            )
        self.hub.send_outgoing(outgoing)

    # Outbound

    def send_via_resource(self, link: RNS.Link, payload: bytes) -> bool:
        """
        Send an encoded event too large for one packet.

        A small RESOURCE_ENVELOPE packet goes first so the client can match
        the Resource that follows. Returns True if the transfer was started.
        """
        size = len(payload)
        if size > int(self.hub.config.max_resource_bytes):
            self.log.error(
                "Event too large for resource transfer: %s > %s",
                size,
                self.hub.config.max_resource_bytes,
            )
            return False

        rid = os.urandom(8)
        envelope = make_envelope(
            T_RESOURCE_ENVELOPE,
            body={
                B_RES_ID: rid,
                B_RES_SIZE: size,
                B_RES_SHA256: hashlib.sha256(payload).digest(),
            },
        )

        try:
            RNS.Packet(link, encode(envelope)).send()
            resource = RNS.Resource(
                payload,
                link,
                advertise=True,
                auto_compress=False,
                callback=lambda r: self._outbound_concluded(link, r),
            )
        except Exception as e:
            self.log.error(
                "Failed to send resource link_id=%s: %s",
                self.hub._fmt_link_id(link),
                e,
            )
            return False

        with self._lock:
            self._active.setdefault(link, set()).add(resource)
        self.hub.stats.inc("resources_sent")

        self.log.debug(
            "Sent resource link_id=%s rid=%s size=%s",
            self.hub._fmt_link_id(link),
            rid.hex(),
            size,
        )
        return True

    def _outbound_concluded(self, link: RNS.Link, resource: RNS.Resource) -> None:
        with self._lock:
            active = self._active.get(link)
            if active:
                active.discard(resource)

        if resource.status != RNS.Resource.COMPLETE:
            self.log.warning(
                "Outbound resource failed link_id=%s status=%s",
                self.hub._fmt_link_id(link),
                resource.status,
            )
