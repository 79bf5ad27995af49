"""
Key Manager - Issuer keys for the development backend

Supports:
- Ed25519: credential proofs (Ed25519Signature2020)
- secp256k1: Ethereum-style oracle signatures on zkpData
"""

import base64
from typing import Optional, Dict, Any
from dataclasses import dataclass
from datetime import datetime

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from eth_account import Account
from eth_account.messages import encode_defunct


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('utf-8').rstrip('=')


def _unb64(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + '=' * (-len(data) % 4))


@dataclass
class KeyPair:
    """A key pair controlled by a DID"""
    key_id: str
    key_type: str  # Ed25519VerificationKey2020, EcdsaSecp256k1VerificationKey2019
    public_key: str  # base64url (Ed25519) or Ethereum address (secp256k1)
    private_key: Optional[str] = None
    controller: str = ""
    created_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = datetime.utcnow().isoformat() + "Z"

    def to_verification_method(self) -> Dict[str, Any]:
        """W3C Verification Method entry"""
        return {
            "id": self.key_id,
            "type": self.key_type,
            "controller": self.controller,
            "publicKeyMultibase": f"z{self.public_key}"
        }


class KeyManager:
    """Generates keys, signs and verifies"""

    def __init__(self):
        self._keys: Dict[str, KeyPair] = {}

    # ==================== KEY GENERATION ====================

    def generate_ed25519_keypair(self, did: str) -> KeyPair:
        private_key = ed25519.Ed25519PrivateKey.generate()

        private_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )

        keypair = KeyPair(
            key_id=f"{did}#key-1",
            key_type="Ed25519VerificationKey2020",
            public_key=_b64(public_bytes),
            private_key=_b64(private_bytes),
            controller=did
        )
        self._keys[keypair.key_id] = keypair
        return keypair

    def generate_from_ethereum_key(self, did: str, private_key: Optional[str] = None) -> KeyPair:
        """secp256k1 key from an existing Ethereum private key, or a new one"""
        account = Account.from_key(private_key) if private_key else Account.create()

        keypair = KeyPair(
            key_id=f"{did}#key-eth-1",
            key_type="EcdsaSecp256k1VerificationKey2019",
            public_key=account.address,
            private_key=account.key.hex(),
            controller=did
        )
        self._keys[keypair.key_id] = keypair
        return keypair

    # ==================== SIGNING ====================

    def sign_ed25519(self, key_id: str, message: bytes) -> str:
        keypair = self._keys.get(key_id)
        if not keypair or keypair.key_type != "Ed25519VerificationKey2020":
            raise ValueError(f"Ed25519 key not found: {key_id}")

        private_key = ed25519.Ed25519PrivateKey.from_private_bytes(_unb64(keypair.private_key))
        return _b64(private_key.sign(message))

    def sign_secp256k1(self, key_id: str, message: str) -> str:
        keypair = self._keys.get(key_id)
        if not keypair or keypair.key_type != "EcdsaSecp256k1VerificationKey2019":
            raise ValueError(f"secp256k1 key not found: {key_id}")

        signed = Account.sign_message(encode_defunct(text=message), private_key=keypair.private_key)
        signature = signed.signature.hex()
        return signature if signature.startswith("0x") else f"0x{signature}"

    # ==================== VERIFICATION ====================

    def verify_ed25519(self, public_key: str, message: bytes, signature: str) -> bool:
        try:
            pub_key = ed25519.Ed25519PublicKey.from_public_bytes(_unb64(public_key))
            pub_key.verify(_unb64(signature), message)
            return True
        except (InvalidSignature, ValueError):
            return False

    def verify_secp256k1(self, message: str, signature: str, expected_address: str) -> bool:
        try:
            recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
            return recovered.lower() == expected_address.lower()
        except Exception:
            return False

    def get_key(self, key_id: str) -> Optional[KeyPair]:
        return self._keys.get(key_id)
