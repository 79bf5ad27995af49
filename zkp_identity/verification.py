"""
Credential Verification
=======================

Turns a stored Verifiable Credential into a classified verification
result by asking the backend (which talks to the issuer node).

Flow per attempt:
1. Local preconditions (no network): credential present, credential
   has a subject, an issuer DID can be resolved
2. One verify-credential call through the API gateway
3. Classification of the answer:
   - hard verified   (verified=true, proof.method issuer-node|structure)
   - soft rejection  (verified=false with a stage)
   - failure         (gateway raised: transport, setup, backend status)

Nothing is retried; the user re-invokes verification.
"""

import time
import logging
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .api_client import APIGateway
from .did_codec import format_did_short
from .models import VerifiableCredential
from .session import SessionManager
from .exceptions import (
    IncompleteCredentialError,
    NoCredentialError,
    NoIssuerError,
    NoSessionError,
    ZKPIdentityError,
    ZKPVerificationFailedError,
)

logger = logging.getLogger("ZKPVerifier")


class ProofType(Enum):
    """What the caller claims to be checking; the network call is the same"""
    AUTH_METHOD = "authMethod"
    IS_VERIFIED = "isVerified"
    ACCOUNT_STATE = "accountState"
    ACCOUNT_AGE = "accountAge"
    COMBINED = "combined"


class VerificationMethod(Enum):
    """How the backend reached its verdict"""
    ISSUER_NODE = "issuer-node"  # on-chain state of the issuer node
    STRUCTURE = "structure"      # local structural check only


class VerificationStatus(Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"
    FAILED = "failed"


def build_proof_query(
    proof_type: ProofType,
    auth_method: str = "wallet",
    state: str = "active",
    min_days: int = 30,
    conditions: Optional[Dict[str, Any]] = None,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Query annotation sent along with the credential

    Args:
        proof_type: Which predicate the UI wants to show
        auth_method: Expected auth method for AUTH_METHOD
        state: Expected account state for ACCOUNT_STATE
        min_days: Minimum account age for ACCOUNT_AGE
        conditions: isVerified / accountState / authMethod / minAge for COMBINED
        now: Unix time override

    Returns:
        credentialSubject query, e.g. {"isVerified": {"$eq": True}}
    """
    now = time.time() if now is None else now

    def registered_before(days: int) -> Dict[str, int]:
        return {"$lt": int(now) - days * 24 * 60 * 60}

    if proof_type == ProofType.AUTH_METHOD:
        return {"authMethod": {"$eq": auth_method}}
    if proof_type == ProofType.IS_VERIFIED:
        return {"isVerified": {"$eq": True}}
    if proof_type == ProofType.ACCOUNT_STATE:
        return {"accountState": {"$eq": state}}
    if proof_type == ProofType.ACCOUNT_AGE:
        return {"registrationDate": registered_before(min_days)}

    conditions = conditions or {}
    query: Dict[str, Any] = {}
    if conditions.get("isVerified") is not None:
        query["isVerified"] = {"$eq": conditions["isVerified"]}
    if conditions.get("accountState"):
        query["accountState"] = {"$eq": conditions["accountState"]}
    if conditions.get("authMethod"):
        query["authMethod"] = {"$eq": conditions["authMethod"]}
    if conditions.get("minAge"):
        query["registrationDate"] = registered_before(conditions["minAge"])
    return query


@dataclass
class CryptographicProof:
    """Signature / claim / merkle-tree-proof details from the issuer node"""
    signature: Optional[str] = None
    core_claim: Optional[Any] = None
    mtp_existence: Optional[bool] = None
    mtp_siblings: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "coreClaim": self.core_claim,
            "mtp": {"existence": self.mtp_existence, "siblings": self.mtp_siblings},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CryptographicProof":
        mtp = data.get("mtp") or data.get("issuerMTP") or {}
        siblings = mtp.get("siblings", 0)
        if isinstance(siblings, list):
            siblings = len(siblings)
        return cls(
            signature=data.get("signature"),
            core_claim=data.get("coreClaim"),
            mtp_existence=mtp.get("existence"),
            mtp_siblings=siblings or 0,
        )


@dataclass
class VerificationProof:
    """Proof block of a verified result"""
    method: str
    credential_id: Optional[str] = None
    subject: Optional[str] = None
    not_revoked: Optional[bool] = None
    timestamp: Optional[str] = None
    cryptographic_proof: Optional[CryptographicProof] = None

    @property
    def is_on_chain(self) -> bool:
        return self.method == VerificationMethod.ISSUER_NODE.value

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "method": self.method,
            "credentialId": self.credential_id,
            "subject": self.subject,
            "notRevoked": self.not_revoked,
            "timestamp": self.timestamp,
        }
        if self.cryptographic_proof:
            result["cryptographicProof"] = self.cryptographic_proof.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationProof":
        crypto = data.get("cryptographicProof")
        return cls(
            method=data.get("method", VerificationMethod.STRUCTURE.value),
            credential_id=data.get("credentialId"),
            subject=data.get("subject"),
            not_revoked=data.get("notRevoked"),
            timestamp=data.get("timestamp"),
            cryptographic_proof=CryptographicProof.from_dict(crypto) if crypto else None,
        )


@dataclass
class VerificationResult:
    """Outcome of one verification attempt (never persisted)"""
    success: bool
    verified: bool
    message: str
    proof_type: str = ProofType.IS_VERIFIED.value
    proof: Optional[VerificationProof] = None
    full_data: Optional[Dict[str, Any]] = None
    warning: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    stage: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    checked_at: str = ""

    def __post_init__(self):
        if not self.checked_at:
            self.checked_at = datetime.utcnow().isoformat() + "Z"

    @property
    def status(self) -> VerificationStatus:
        if self.verified:
            return VerificationStatus.VERIFIED
        if self.success:
            return VerificationStatus.REJECTED
        return VerificationStatus.FAILED

    @property
    def is_on_chain(self) -> bool:
        return bool(self.proof and self.proof.is_on_chain)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "verified": self.verified,
            "status": self.status.value,
            "message": self.message,
            "proofType": self.proof_type,
            "checkedAt": self.checked_at,
        }
        if self.proof:
            result["proof"] = self.proof.to_dict()
        if self.full_data is not None:
            result["fullData"] = self.full_data
        for key, value in (
            ("warning", self.warning),
            ("error", self.error),
            ("errorCode", self.error_code),
            ("stage", self.stage),
        ):
            if value is not None:
                result[key] = value
        if self.details:
            result["details"] = self.details
        return result

    @classmethod
    def from_error(cls, error: ZKPIdentityError, proof_type: str) -> "VerificationResult":
        return cls(
            success=False,
            verified=False,
            message=error.message,
            proof_type=proof_type,
            error=error.message,
            error_code=error.code,
            stage=error.stage,
            details=error.details,
        )


def resolve_issuer_did(
    credential: VerifiableCredential,
    issuer_did: Optional[str] = None,
    zkp_data: Optional[Dict[str, Any]] = None,
    holder_did: Optional[str] = None,
) -> Optional[str]:
    """
    Issuer DID in order of preference:
    explicit argument, credential.issuer, zkpData.identifier, holder DID
    """
    if not isinstance(zkp_data, dict):
        zkp_data = {}
    candidates = (
        issuer_did,
        credential.issuer_did,
        zkp_data.get("identifier"),
        zkp_data.get("issuerDID"),
        holder_did,
    )
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return None


class CredentialVerifier:
    """
    Drives credential verification against the backend

    Args:
        gateway: API gateway used for the verify-credential call
        require_issuer_node: If True, results verified only structurally
            are reported as not verified (stage "trust")
    """

    def __init__(self, gateway: APIGateway, require_issuer_node: bool = False):
        self.gateway = gateway
        self.require_issuer_node = require_issuer_node

    async def verify(
        self,
        credential: Union[Dict[str, Any], VerifiableCredential, None],
        issuer_did: Optional[str] = None,
        zkp_data: Optional[Dict[str, Any]] = None,
        holder_did: Optional[str] = None,
        proof_type: ProofType = ProofType.IS_VERIFIED,
        **query_options: Any,
    ) -> VerificationResult:
        """
        Verify a credential

        Raises:
            NoCredentialError, IncompleteCredentialError, NoIssuerError:
                before any network call
        """
        if not credential:
            raise NoCredentialError()

        if isinstance(credential, VerifiableCredential):
            vc = credential
            payload = credential.to_dict()
        elif isinstance(credential, dict):
            vc = VerifiableCredential.from_dict(credential)
            payload = credential
        else:
            # e.g. a JWT-encoded credential string: no readable subject
            raise IncompleteCredentialError("credentialSubject")

        if not vc.credential_subject or not isinstance(vc.credential_subject, dict):
            raise IncompleteCredentialError("credentialSubject")

        issuer = resolve_issuer_did(vc, issuer_did, zkp_data, holder_did)
        if issuer is None:
            raise NoIssuerError()

        query = build_proof_query(proof_type, **query_options)
        logger.info(
            f"[ZKP] Verifying credential {vc.id or '<no id>'} "
            f"(issuer {format_did_short(issuer)}, proof {proof_type.value})"
        )

        try:
            response = await self.gateway.verify_credential(
                payload, issuer, proof_type=proof_type.value, query=query
            )
        except ZKPVerificationFailedError as e:
            # older backends reject with a status code instead of verified=false
            return self._rejected(e.data if isinstance(e.data, dict) else {}, proof_type)
        except ZKPIdentityError as e:
            logger.error(f"[ZKP] Verification request failed: {e.code} {e.message}")
            return VerificationResult.from_error(e, proof_type.value)

        data = response.data if isinstance(response.data, dict) else {}
        if data.get("verified") is True:
            return self._verified(data, proof_type)
        return self._rejected(data, proof_type)

    def _verified(self, data: Dict[str, Any], proof_type: ProofType) -> VerificationResult:
        proof = VerificationProof.from_dict(data.get("proof") or {})
        warning = data.get("warning")
        if not proof.is_on_chain and not warning:
            warning = "Verified structurally; no issuer node proof was produced"

        if self.require_issuer_node and not proof.is_on_chain:
            logger.warning("[ZKP] Structural verification rejected by trust policy")
            return VerificationResult(
                success=True,
                verified=False,
                message="Issuer node verification is required",
                proof_type=proof_type.value,
                proof=proof,
                full_data=data.get("fullData"),
                warning=warning,
                error="Credential was only verified structurally",
                stage="trust",
            )

        logger.info(f"[ZKP] Credential verified ({proof.method})")
        return VerificationResult(
            success=True,
            verified=True,
            message=data.get("message") or "Credential verified",
            proof_type=proof_type.value,
            proof=proof,
            full_data=data.get("fullData"),
            warning=warning,
        )

    def _rejected(self, data: Dict[str, Any], proof_type: ProofType) -> VerificationResult:
        error = data.get("error") or data.get("message") or "Credential could not be verified"
        stage = data.get("stage")
        logger.warning(f"[ZKP] Credential rejected at stage {stage}: {error}")
        return VerificationResult(
            success=True,
            verified=False,
            message=data.get("message") or error,
            proof_type=proof_type.value,
            full_data=data.get("fullData"),
            warning=data.get("warning"),
            error=error,
            stage=stage,
        )


async def verify_identity(
    session: SessionManager,
    verifier: CredentialVerifier,
    proof_type: ProofType = ProofType.IS_VERIFIED,
    issuer_did: Optional[str] = None,
    **query_options: Any,
) -> VerificationResult:
    """
    "Verify my identity" action: verify the credential stored in the session

    Precondition failures come back as a result carrying their error code
    and stage instead of being raised.
    """
    user = session.get_session()
    if user is None:
        return VerificationResult.from_error(NoSessionError(), proof_type.value)

    try:
        return await verifier.verify(
            user.get("credential"),
            issuer_did=issuer_did,
            zkp_data=user.get("zkpData"),
            holder_did=user.get("did"),
            proof_type=proof_type,
            **query_options,
        )
    except ZKPIdentityError as e:
        logger.error(f"[ZKP] {e.code}: {e.message}")
        return VerificationResult.from_error(e, proof_type.value)
