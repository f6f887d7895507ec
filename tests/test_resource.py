"""Tests for upload expectations and resource transfer handling."""
import hashlib

import RNS

from roomhub.codec import decode
from roomhub.config import HubRuntimeConfig
from roomhub.constants import K_BODY, K_T, T_ERROR, T_LOGIN, T_UPLOAD, T_UPLOADED
from roomhub.resources import ResourceManager
from roomhub.router import SessionRouter
from roomhub.stats import StatsManager
from roomhub.uploads import UploadStore


class FakeLink:
    link_id = b"\x01\x02"


class FakeResource:
    def __init__(self, data: bytes, status=RNS.Resource.COMPLETE) -> None:
        self.data = data
        self.status = status


class FakeAdvertisement:
    def __init__(self, size: int) -> None:
        self.size = size

    def get_data_size(self) -> int:
        return self.size


class FakeHub:
    def __init__(self, tmp_path, **overrides) -> None:
        self.config = HubRuntimeConfig(**overrides)
        self.stats = StatsManager()
        self.router = SessionRouter(self.config, stats=self.stats)
        self.upload_store = UploadStore(str(tmp_path))
        self.sent: list = []

    def _fmt_link_id(self, link) -> str:
        return link.link_id.hex()

    def send_outgoing(self, outgoing) -> None:
        self.sent.extend(outgoing)


def _setup(tmp_path, **overrides):
    hub = FakeHub(tmp_path, **overrides)
    mgr = ResourceManager(hub)
    link = FakeLink()
    hub.router.on_connect(link)
    mgr.on_link_established(link)
    hub.router.dispatch(link, T_LOGIN, {"username": "alice"})
    return hub, mgr, link


def _upload_body(data: bytes, name: str = "cat.png") -> dict:
    return {
        "id": b"r1",
        "name": name,
        "size": len(data),
        "sha256": hashlib.sha256(data).digest(),
    }


def test_upload_is_stored_and_acknowledged(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path)
    data = b"\x89PNG" * 10

    assert hub.router.dispatch(link, T_UPLOAD, _upload_body(data)) == []
    mgr._resource_concluded(link, FakeResource(data))

    ((conn, payload),) = hub.sent
    env = decode(payload)
    assert conn is link
    assert env[K_T] == T_UPLOADED
    assert env[K_BODY]["id"] == b"r1"
    assert env[K_BODY]["name"] == "cat.png"
    assert env[K_BODY]["url"].endswith("-cat.png")
    assert hub.stats.get("uploads_received") == 1
    assert mgr.match_expectation(link, size=len(data), sha256=None) is None


def test_unannounced_resource_is_rejected(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path)

    mgr._resource_concluded(link, FakeResource(b"surprise"))

    assert hub.sent == []
    assert hub.stats.get("uploads_rejected") == 1
    assert list(tmp_path.iterdir()) == []


def test_hash_mismatch_keeps_expectation(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path)
    hub.router.dispatch(link, T_UPLOAD, _upload_body(b"good"))

    mgr._resource_concluded(link, FakeResource(b"evil"))

    assert hub.sent == []
    assert mgr.match_expectation(link, size=4, sha256=None) is not None


def test_anonymous_upload_is_dropped(tmp_path) -> None:
    hub = FakeHub(tmp_path)
    mgr = ResourceManager(hub)
    link = FakeLink()
    hub.router.on_connect(link)
    mgr.on_link_established(link)

    assert hub.router.dispatch(link, T_UPLOAD, _upload_body(b"data")) == []
    assert mgr.match_expectation(link, size=4, sha256=None) is None


def test_oversized_upload_is_refused(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path, max_upload_bytes=8)

    out = hub.router.dispatch(link, T_UPLOAD, _upload_body(b"x" * 9))

    ((_, payload),) = out
    env = decode(payload)
    assert env[K_T] == T_ERROR
    assert env[K_BODY]["message"].startswith("upload too large")


def test_pending_upload_limit(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path, max_pending_uploads=1)

    hub.router.dispatch(link, T_UPLOAD, _upload_body(b"one"))
    body = _upload_body(b"two")
    body["id"] = b"r2"
    out = hub.router.dispatch(link, T_UPLOAD, body)

    ((_, payload),) = out
    assert decode(payload)[K_BODY]["message"] == "too many pending uploads"


def test_uploads_disabled(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path, enable_uploads=False)

    out = hub.router.dispatch(link, T_UPLOAD, _upload_body(b"data"))

    ((_, payload),) = out
    assert decode(payload)[K_BODY]["message"] == "uploads disabled"


def test_link_close_drops_expectations(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path)
    hub.router.dispatch(link, T_UPLOAD, _upload_body(b"data"))

    mgr.on_link_closed(link)

    assert mgr.match_expectation(link, size=4, sha256=None) is None


def test_advertisement_needs_matching_upload(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path)
    assert mgr._resource_advertised(link, FakeAdvertisement(4)) is False

    hub.router.dispatch(link, T_UPLOAD, _upload_body(b"data"))
    assert mgr._resource_advertised(link, FakeAdvertisement(5)) is False
    assert mgr._resource_advertised(link, FakeAdvertisement(4)) is True
    assert hub.stats.get("uploads_rejected") == 2


def test_store_failure_is_reported_to_client(tmp_path) -> None:
    hub, mgr, link = _setup(tmp_path)
    blocker = tmp_path / "not-a-dir"
    blocker.write_bytes(b"")
    hub.upload_store = UploadStore(str(blocker))
    data = b"payload"
    hub.router.dispatch(link, T_UPLOAD, _upload_body(data))

    mgr._resource_concluded(link, FakeResource(data))

    ((conn, payload),) = hub.sent
    env = decode(payload)
    assert conn is link
    assert env[K_T] == T_ERROR
    assert env[K_BODY]["message"] == "upload failed: cat.png"
    assert hub.stats.get("uploads_rejected") == 1
    assert hub.stats.get("uploads_received") == 0
