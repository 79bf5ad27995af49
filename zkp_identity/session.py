"""
Session Store - One authenticated session in one well-known slot

Slot format: "<salt>.<base64(JSON)>"

The salt/base64 wrapping only obfuscates the payload; it is not
encryption. A session expires 24h after it was last saved or renewed.
Expiry is checked lazily on read; nothing runs in the background.
"""

import json
import time
import base64
import binascii
import logging
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass

from .config import settings
from .storage import KeyValueStorage

logger = logging.getLogger("ZKPSession")

SESSION_TTL_MS = 86_400_000  # 24 hours
SEPARATOR = "."


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionCodec:
    """Salted base64 wrapping of a JSON value"""

    def __init__(self, salt: str = settings.SESSION_SALT):
        if not salt or SEPARATOR in salt:
            raise ValueError(f"Salt must be non-empty and must not contain '{SEPARATOR}'")
        self.salt = salt

    def encode(self, value: Any) -> Optional[str]:
        """
        Serialize value to "<salt>.<payload>"

        Returns:
            Encoded string, or None if value is not JSON serializable or
            would not decode back to an equal value (tuples, non-string keys)
        """
        try:
            json_string = json.dumps(value, allow_nan=False, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"[Encode Error] {e}")
            return None

        if json.loads(json_string) != value:
            logger.error(f"[Encode Error] {type(value).__name__} does not survive a JSON round trip")
            return None

        encoded = base64.b64encode(json_string.encode("utf-8")).decode("ascii")
        return f"{self.salt}{SEPARATOR}{encoded}"

    def decode(self, encoded_data: Any) -> Optional[Any]:
        """
        Inverse of encode()

        Returns:
            The decoded value, or None if the text is not a valid
            "<salt>.<payload>" for this codec
        """
        if not encoded_data or not isinstance(encoded_data, str) or SEPARATOR not in encoded_data:
            return None

        salt, _, encoded = encoded_data.partition(SEPARATOR)
        if salt != self.salt:
            return None

        try:
            decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
            return json.loads(decoded)
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            logger.error(f"[Decode Error] {e}")
            return None


@dataclass
class Session:
    """Stored session envelope"""
    user: Dict[str, Any]
    timestamp: int
    expires_in: int = SESSION_TTL_MS

    @property
    def expires_at(self) -> int:
        return self.timestamp + self.expires_in

    def is_expired(self, at: int) -> bool:
        return at - self.timestamp > self.expires_in

    def remaining_ms(self, at: int) -> int:
        return max(0, self.expires_at - at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user,
            "timestamp": self.timestamp,
            "expiresIn": self.expires_in,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Session"]:
        """None if data is not a well-formed envelope"""
        if not isinstance(data, dict):
            return None
        user = data.get("user")
        timestamp = data.get("timestamp")
        expires_in = data.get("expiresIn")
        if not isinstance(user, dict):
            return None
        if not isinstance(timestamp, int) or not isinstance(expires_in, int):
            return None
        return cls(user=user, timestamp=timestamp, expires_in=expires_in)


class SessionManager:
    """
    Reads and writes the single session slot

    Storage failures and corrupt slots never escape this class: they are
    logged and read as "no session".
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        codec: Optional[SessionCodec] = None,
        storage_key: str = settings.SESSION_STORAGE_KEY,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.storage = storage
        self.codec = codec or SessionCodec()
        self.storage_key = storage_key
        self.clock = clock or now_ms

    def save_session(self, user_payload: Dict[str, Any]) -> bool:
        """Store user_payload with a fresh timestamp; True if written"""
        session = Session(user=user_payload, timestamp=self.clock())
        encoded = self.codec.encode(session.to_dict())
        if encoded is None:
            return False

        try:
            self.storage.set_item(self.storage_key, encoded)
        except (OSError, ValueError) as e:
            logger.error(f"[Session] Could not save session: {e}")
            return False
        return True

    def get_session_info(self) -> Optional[Session]:
        """Full envelope of the active session, or None"""
        try:
            raw = self.storage.get_item(self.storage_key)
        except (OSError, ValueError) as e:
            logger.error(f"[Session] Could not read session: {e}")
            self._purge()
            return None

        if raw is None:
            return None

        session = Session.from_dict(self.codec.decode(raw))
        if session is None:
            logger.warning("[Session] Unreadable session slot, discarding")
            self._purge()
            return None

        if session.is_expired(self.clock()):
            logger.warning("[Session] Session expired")
            self._purge()
            return None

        return session

    def get_session(self) -> Optional[Dict[str, Any]]:
        """User payload of the active session, or None"""
        session = self.get_session_info()
        return session.user if session else None

    def clear_session(self) -> None:
        self._purge()

    def has_active_session(self) -> bool:
        return self.get_session() is not None

    def renew_session(self) -> bool:
        """Slide the 24h window forward, keeping the payload"""
        user = self.get_session()
        if user is None:
            return False
        return self.save_session(user)

    def _purge(self) -> None:
        try:
            self.storage.remove_item(self.storage_key)
        except (OSError, ValueError) as e:
            logger.error(f"[Session] Could not remove session slot: {e}")
            try:
                self.storage.clear()
            except OSError as clear_error:
                logger.error(f"[Session] Could not clear storage: {clear_error}")
