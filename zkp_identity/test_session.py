"""
Session Store Tests
"""

import json

import pytest

from zkp_identity.conftest import FakeClock, T0
from zkp_identity.session import SESSION_TTL_MS, Session, SessionCodec, SessionManager
from zkp_identity.storage import FileStorage, KeyValueStorage, MemoryStorage

USER = {"id": "u1", "name": "Ana", "did": "did:polygonid:polygon:amoy:2qXYZ", "token": "tok-1"}


class TestSessionCodec:
    """Salted base64 wrapping"""

    def setup_method(self):
        self.codec = SessionCodec("zkp_salt_v1")

    @pytest.mark.parametrize("value", [
        {"user": USER, "timestamp": T0, "expiresIn": SESSION_TTL_MS},
        ["a", 1, None, True],
        "plain text",
        {"name": "José ✓"},
        0,
    ])
    def test_decode_inverts_encode(self, value):
        encoded = self.codec.encode(value)
        assert encoded.startswith("zkp_salt_v1.")
        assert self.codec.decode(encoded) == value

    def test_unserializable_value(self):
        assert self.codec.encode({"bad": object()}) is None
        assert self.codec.encode({"nan": float("nan")}) is None

    @pytest.mark.parametrize("value", [
        {1: "a"},
        ("a", "b"),
        {"k": (1, 2)},
        {"user": {"roles": ("admin",)}},
    ])
    def test_lossy_value_rejected(self, value):
        # JSON would hand back string keys / lists
        assert self.codec.encode(value) is None

    def test_session_with_lossy_payload_not_saved(self):
        manager = SessionManager(MemoryStorage(), codec=self.codec, clock=FakeClock())
        assert manager.save_session({"id": "u1", "scopes": ("read",)}) is False
        assert manager.get_session() is None

    @pytest.mark.parametrize("text", [
        None,
        "",
        "no-separator",
        "other_salt.eyJhIjogMX0=",
        "zkp_salt_v1.!!!not-base64!!!",
        "zkp_salt_v1.bm90IGpzb24=",  # "not json"
        "zkp_salt_v1./w==",  # invalid utf-8
    ])
    def test_decode_garbage_returns_none(self, text):
        assert self.codec.decode(text) is None

    def test_salt_must_not_contain_separator(self):
        with pytest.raises(ValueError):
            SessionCodec("bad.salt")
        with pytest.raises(ValueError):
            SessionCodec("")


class TestSessionEnvelope:

    def test_expiry_boundary(self):
        session = Session(user=USER, timestamp=T0)
        assert not session.is_expired(T0 + SESSION_TTL_MS)
        assert session.is_expired(T0 + SESSION_TTL_MS + 1)
        assert session.expires_at == T0 + SESSION_TTL_MS
        assert session.remaining_ms(T0 + 1000) == SESSION_TTL_MS - 1000
        assert session.remaining_ms(T0 + 2 * SESSION_TTL_MS) == 0

    @pytest.mark.parametrize("data", [
        None,
        [],
        {"user": USER},
        {"user": "u1", "timestamp": T0, "expiresIn": SESSION_TTL_MS},
        {"user": USER, "timestamp": "yesterday", "expiresIn": SESSION_TTL_MS},
    ])
    def test_malformed_envelope(self, data):
        assert Session.from_dict(data) is None


class TestSessionManager:
    """Save, read, expire, renew, clear"""

    def setup_method(self):
        self.clock = FakeClock()
        self.storage = MemoryStorage()
        self.manager = SessionManager(self.storage, clock=self.clock)

    def test_save_and_read(self):
        assert self.manager.save_session(USER) is True
        assert self.manager.get_session() == USER
        assert self.manager.has_active_session()

        info = self.manager.get_session_info()
        assert info.timestamp == T0
        assert info.expires_in == SESSION_TTL_MS

    def test_slot_is_salted_base64(self):
        self.manager.save_session(USER)
        raw = self.storage.get_item("zkp_session_data")
        assert raw.startswith("zkp_salt_v1.")
        assert "Ana" not in raw

    def test_no_session(self):
        assert self.manager.get_session() is None
        assert not self.manager.has_active_session()

    def test_still_active_one_ms_before_expiry(self):
        self.manager.save_session(USER)
        self.clock.now = T0 + 86_399_999
        assert self.manager.get_session() == USER

    def test_expired_one_ms_after_ttl_and_slot_purged(self):
        self.manager.save_session(USER)
        self.clock.now = T0 + 86_400_001
        assert self.manager.get_session() is None
        assert self.storage.get_item("zkp_session_data") is None
        print("✅ Expired session purged on read")

    def test_renew_slides_window(self):
        self.manager.save_session(USER)
        self.clock.now = T0 + 86_000_000
        assert self.manager.renew_session() is True

        self.clock.now = T0 + 86_400_001
        assert self.manager.get_session() == USER
        assert self.manager.get_session_info().timestamp == T0 + 86_000_000

    def test_renew_without_session(self):
        assert self.manager.renew_session() is False
        assert self.storage.get_item("zkp_session_data") is None

    def test_second_save_replaces_first(self):
        self.manager.save_session(USER)
        self.manager.save_session({"id": "u2"})
        assert self.manager.get_session() == {"id": "u2"}
        assert len(self.storage) == 1

    def test_clear(self):
        self.manager.save_session(USER)
        self.manager.clear_session()
        assert self.manager.get_session() is None

    def test_corrupt_slot_reads_as_no_session(self):
        self.storage.set_item("zkp_session_data", "zkp_salt_v1.%%%")
        assert self.manager.get_session() is None
        assert self.storage.get_item("zkp_session_data") is None

    def test_wrong_salt_reads_as_no_session(self):
        other = SessionManager(self.storage, codec=SessionCodec("another_salt"), clock=self.clock)
        other.save_session(USER)
        assert self.manager.get_session() is None

    def test_quota_exceeded_save_returns_false(self):
        manager = SessionManager(MemoryStorage(quota=32), clock=self.clock)
        assert manager.save_session(USER) is False
        assert manager.get_session() is None

    def test_unserializable_payload_not_saved(self):
        assert self.manager.save_session({"when": object()}) is False
        assert self.manager.get_session() is None


class TestFileStorage:

    def test_implements_protocol(self, tmp_path):
        assert isinstance(FileStorage(tmp_path / "s.json"), KeyValueStorage)
        assert isinstance(MemoryStorage(), KeyValueStorage)

    def test_session_survives_new_manager(self, tmp_path):
        path = tmp_path / "nested" / "session.json"
        clock = FakeClock()
        SessionManager(FileStorage(path), clock=clock).save_session(USER)

        reopened = SessionManager(FileStorage(path), clock=clock)
        assert reopened.get_session() == USER
        assert "zkp_session_data" in json.loads(path.read_text())

    def test_remove_keeps_other_slots(self, tmp_path):
        storage = FileStorage(tmp_path / "s.json")
        storage.set_item("a", "1")
        storage.set_item("b", "2")
        storage.remove_item("a")
        assert storage.get_item("a") is None
        assert storage.get_item("b") == "2"

    def test_broken_file_is_cleared(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{ not json")
        manager = SessionManager(FileStorage(path), clock=FakeClock())

        assert manager.get_session() is None
        assert not path.exists()

        assert manager.save_session(USER) is True
        assert manager.get_session() == USER
