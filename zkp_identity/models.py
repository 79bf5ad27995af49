"""
Data model shared by the client components

- VerifiableCredential: read-only view of a W3C credential as issued
- UserProfile: the user payload held in the session
"""

import json
import hashlib
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum


class AuthMethod(Enum):
    """How the user authenticated"""
    EMAIL_PASSWORD = "email-password"
    WALLET = "wallet"


_CREDENTIAL_KEYS = {
    "@context", "id", "type", "issuer", "issuanceDate", "expirationDate",
    "credentialSubject", "credentialSchema", "credentialStatus", "proof",
}


@dataclass
class VerifiableCredential:
    """
    W3C Verifiable Credential as received from the backend

    The client never edits a credential: to_dict() gives back the same
    shape that from_dict() received, unknown members included.
    """
    context: List[str] = field(default_factory=list)
    id: str = ""
    type: List[str] = field(default_factory=list)
    issuer: Any = None  # DID string or {"id": DID, ...}
    issuance_date: str = ""
    expiration_date: Optional[str] = None
    credential_subject: Optional[Dict[str, Any]] = None
    credential_schema: Optional[Dict[str, Any]] = None
    credential_status: Optional[Dict[str, Any]] = None
    proof: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def issuer_did(self) -> Optional[str]:
        """Issuer DID whether issuer is a string or an object"""
        if isinstance(self.issuer, dict):
            return self.issuer.get("id") or None
        return self.issuer or None

    @property
    def subject_did(self) -> Optional[str]:
        if not self.credential_subject:
            return None
        return self.credential_subject.get("id")

    def claim(self, name: str, default: Any = None) -> Any:
        """Read one claim from credentialSubject"""
        if not self.credential_subject:
            return default
        return self.credential_subject.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        vc: Dict[str, Any] = {}
        if self.context:
            vc["@context"] = self.context
        if self.id:
            vc["id"] = self.id
        if self.type:
            vc["type"] = self.type
        if self.issuer is not None:
            vc["issuer"] = self.issuer
        if self.issuance_date:
            vc["issuanceDate"] = self.issuance_date
        if self.expiration_date:
            vc["expirationDate"] = self.expiration_date
        if self.credential_subject is not None:
            vc["credentialSubject"] = self.credential_subject
        if self.credential_schema:
            vc["credentialSchema"] = self.credential_schema
        if self.credential_status:
            vc["credentialStatus"] = self.credential_status
        if self.proof:
            vc["proof"] = self.proof
        vc.update(self.extra)
        return vc

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def get_hash(self) -> str:
        """Hash of the credential without its proof"""
        vc_dict = self.to_dict()
        vc_dict.pop("proof", None)
        canonical = json.dumps(vc_dict, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode()).hexdigest()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerifiableCredential":
        return cls(
            context=data.get("@context", []),
            id=data.get("id", ""),
            type=data.get("type", []),
            issuer=data.get("issuer"),
            issuance_date=data.get("issuanceDate", ""),
            expiration_date=data.get("expirationDate"),
            credential_subject=data.get("credentialSubject"),
            credential_schema=data.get("credentialSchema"),
            credential_status=data.get("credentialStatus"),
            proof=data.get("proof"),
            extra={k: v for k, v in data.items() if k not in _CREDENTIAL_KEYS},
        )


_PROFILE_KEYS = {
    "id", "name", "email", "walletAddress", "did", "credential",
    "zkpData", "type", "token",
}


@dataclass
class UserProfile:
    """
    User payload stored in the session

    Carries at least one of name / email / wallet_address, plus the DID,
    credential and zkpData the backend issued at authentication time.
    """
    did: Optional[str] = None
    type: str = AuthMethod.EMAIL_PASSWORD.value
    id: Optional[Any] = None
    name: Optional[str] = None
    email: Optional[str] = None
    wallet_address: Optional[str] = None
    credential: Optional[Dict[str, Any]] = None
    zkp_data: Optional[Dict[str, Any]] = None
    token: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    persisted: bool = field(default=True, compare=False)  # False if the session slot could not be written

    @property
    def auth_method(self) -> AuthMethod:
        return AuthMethod(self.type)

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.wallet_address or "anonymous"

    def get_credential(self) -> Optional[VerifiableCredential]:
        if not self.credential:
            return None
        return VerifiableCredential.from_dict(self.credential)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.extra)
        result.update({
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "walletAddress": self.wallet_address,
            "did": self.did,
            "credential": self.credential,
            "zkpData": self.zkp_data,
            "type": self.type,
        })
        if self.token:
            result["token"] = self.token
        return {k: v for k, v in result.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            email=data.get("email"),
            wallet_address=data.get("walletAddress"),
            did=data.get("did"),
            credential=data.get("credential"),
            zkp_data=data.get("zkpData"),
            type=data.get("type", AuthMethod.EMAIL_PASSWORD.value),
            token=data.get("token"),
            extra={k: v for k, v in data.items() if k not in _PROFILE_KEYS},
        )

    @classmethod
    def from_auth_response(
        cls,
        data: Dict[str, Any],
        auth_method: AuthMethod,
        wallet_address: Optional[str] = None,
    ) -> "UserProfile":
        """
        Build the session payload from a register/login/wallet-auth answer

        The response looks like {did, user, zkpData, credential, token};
        the top-level fields take precedence over the nested user object.
        """
        merged = dict(data.get("user") or {})
        for key in ("did", "zkpData", "credential", "token"):
            if data.get(key) is not None:
                merged[key] = data[key]
        if wallet_address:
            merged["walletAddress"] = wallet_address
        merged["type"] = auth_method.value
        return cls.from_dict(merged)
