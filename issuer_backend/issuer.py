"""
Issuer Node (development)
=========================

Issues ZKPAuthCredential credentials to registered users and verifies
them in stages, the way the real issuer node answers the client:

1. credential  - structure (subject, issuer, id)
2. issuer      - issuer DID is this node
3. revocation  - credential not revoked
4. signature   - Ed25519 proof over the credential hash
5. query       - credentialSubject satisfies the requested predicate

Signed credentials verify as "issuer-node" with a claims-tree
inclusion proof; unsigned ones only as "structure".

No zero-knowledge proof is generated here.
"""

import hashlib
import json
import secrets
import time
import uuid
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass
from datetime import datetime, timedelta

from zkp_identity.did_codec import compare_dids
from zkp_identity.models import VerifiableCredential

from .key_manager import KeyManager

DID_PREFIX = "did:polygonid:polygon:amoy"
CREDENTIAL_TYPE = "ZKPAuthCredential"
SCHEMA_CONTEXT = "ipfs://QmXAHpXSPcj2J7wreCkKkvvXgT67tbQDvFxmTHudXQYBEp"


def make_did(seed: Optional[str] = None) -> str:
    """did:polygonid:polygon:amoy:<id>, deterministic when seeded"""
    if seed:
        unique_id = hashlib.sha256(seed.lower().encode()).hexdigest()[:32]
    else:
        unique_id = secrets.token_hex(16)
    return f"{DID_PREFIX}:{unique_id}"


def _sha256(data: str) -> str:
    return hashlib.sha256(data.encode()).hexdigest()


def merkle_siblings(leaves: List[str], leaf: str) -> Tuple[bool, List[str]]:
    """
    Inclusion proof of leaf in a sha256 tree over the sorted leaves

    Returns:
        (exists, sibling hashes from the leaf up to the root)
    """
    level = sorted(leaves)
    if leaf not in level:
        return False, []

    index = level.index(leaf)
    siblings = []
    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        sibling = index ^ 1
        siblings.append(level[sibling])
        level = [_sha256(level[i] + level[i + 1]) for i in range(0, len(level), 2)]
        index //= 2
    return True, siblings


@dataclass
class StageResult:
    passed: bool
    stage: str
    message: str = ""


class IssuerNode:
    """
    Issues and verifies credentials

    Args:
        oracle_private_key: Ethereum key signing zkpData commitments
    """

    def __init__(self, oracle_private_key: Optional[str] = None):
        self.key_manager = KeyManager()
        self.issuer_did = make_did()
        self.signing_key = self.key_manager.generate_ed25519_keypair(self.issuer_did)
        self.oracle_key = self.key_manager.generate_from_ethereum_key(
            self.issuer_did, oracle_private_key
        )
        self._issued: Dict[str, VerifiableCredential] = {}
        self._revoked: set = set()

    @property
    def oracle_address(self) -> str:
        return self.oracle_key.public_key

    # ==================== ISSUANCE ====================

    def issue_auth_credential(
        self,
        subject_did: str,
        auth_method: str,
        registration_date: Optional[int] = None,
        signed: bool = True,
        validity_days: int = 365
    ) -> VerifiableCredential:
        """
        Issue the authentication credential for a user

        Args:
            subject_did: The user's DID
            auth_method: "email" or "wallet"
            registration_date: Unix timestamp of account creation
            signed: Attach an Ed25519 proof
            validity_days: How long the credential is valid
        """
        expiration = datetime.utcnow() + timedelta(days=validity_days)

        vc = VerifiableCredential(
            context=["https://www.w3.org/2018/credentials/v1", SCHEMA_CONTEXT],
            id=f"urn:uuid:{uuid.uuid4()}",
            type=["VerifiableCredential", CREDENTIAL_TYPE],
            issuer=self.issuer_did,
            issuance_date=datetime.utcnow().isoformat() + "Z",
            expiration_date=expiration.isoformat() + "Z",
            credential_subject={
                "id": subject_did,
                "authMethod": auth_method,
                "accountState": "active",
                "isVerified": True,
                "registrationDate": registration_date or int(time.time()),
            },
            credential_status={
                "id": f"{self.issuer_did}/credentials/revocation/status",
                "type": "SparseMerkleTreeProof",
                "revocationNonce": secrets.randbelow(2**32),
            },
        )

        if signed:
            created = datetime.utcnow().isoformat() + "Z"
            vc.proof = {
                "type": "Ed25519Signature2020",
                "created": created,
                "verificationMethod": self.signing_key.key_id,
                "proofPurpose": "assertionMethod",
                "proofValue": self.key_manager.sign_ed25519(
                    self.signing_key.key_id, vc.get_hash().encode()
                ),
            }

        self._issued[vc.id] = vc
        return vc

    def create_zkp_data(self, subject_did: str, user_secret: Optional[str] = None) -> Dict[str, Any]:
        """
        Commitment/nullifier pair for the user, signed by the oracle key

        Simplified hashes (sha256); a real deployment uses Poseidon.
        """
        user_secret = user_secret or secrets.token_hex(16)
        timestamp = int(time.time())
        nullifier = _sha256(f"{subject_did}:{user_secret}")
        commitment = _sha256(f"{subject_did}:{nullifier}:{timestamp}")
        signature = self.key_manager.sign_secp256k1(
            self.oracle_key.key_id, f"ZKP_APPROVAL:{commitment}:{nullifier}"
        )
        return {
            "identifier": self.issuer_did,
            "commitment": commitment,
            "nullifier": nullifier,
            "timestamp": timestamp,
            "oracleAddress": self.oracle_address,
            "oracleSignature": signature,
        }

    def revoke(self, credential_id: str) -> bool:
        if credential_id not in self._issued:
            return False
        self._revoked.add(credential_id)
        return True

    def is_revoked(self, credential_id: str) -> bool:
        return credential_id in self._revoked

    # ==================== VERIFICATION ====================

    def verify(
        self,
        credential_data: Dict[str, Any],
        issuer_did: str,
        query: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Staged verification

        Returns:
            {success, verified, message, stage?, proof?, warning?, fullData}
        """
        vc = VerifiableCredential.from_dict(credential_data or {})
        checks: Dict[str, bool] = {}
        full_data = {"issuerDID": issuer_did, "query": query, "checks": checks}

        stages = (
            self._check_structure,
            self._check_issuer,
            self._check_revocation,
            self._check_signature,
        )
        for check in stages:
            result = check(vc, issuer_did)
            checks[result.stage] = result.passed
            if not result.passed:
                return self._rejection(result, full_data)

        if query:
            result = self._check_query(vc, query)
            checks[result.stage] = result.passed
            if not result.passed:
                return self._rejection(result, full_data)

        proof: Dict[str, Any] = {
            "credentialId": vc.id,
            "subject": vc.subject_did,
            "notRevoked": True,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
        response: Dict[str, Any] = {"success": True, "verified": True, "fullData": full_data}

        if vc.proof:
            claim_hash = vc.get_hash()
            leaves = [issued.get_hash() for issued in self._issued.values()]
            exists, siblings = merkle_siblings(leaves, claim_hash)
            proof["method"] = "issuer-node"
            proof["cryptographicProof"] = {
                "signature": vc.proof.get("proofValue"),
                "coreClaim": claim_hash,
                "mtp": {"existence": exists, "siblings": siblings},
            }
            response["message"] = "Credential verified against the issuer node"
        else:
            proof["method"] = "structure"
            response["message"] = "Credential structure verified"
            response["warning"] = "Credential carries no proof; issuer node check skipped"

        response["proof"] = proof
        return response

    @staticmethod
    def _rejection(result: StageResult, full_data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "success": True,
            "verified": False,
            "stage": result.stage,
            "error": result.message,
            "message": result.message,
            "fullData": full_data,
        }

    def _check_structure(self, vc: VerifiableCredential, issuer_did: str) -> StageResult:
        missing = [
            name for name, value in (
                ("id", vc.id),
                ("issuer", vc.issuer_did),
                ("credentialSubject", vc.credential_subject),
            ) if not value
        ]
        if missing:
            return StageResult(False, "credential", f"Credential missing {', '.join(missing)}")
        if "VerifiableCredential" not in (vc.type or []):
            return StageResult(False, "credential", "Invalid or missing credential type")
        return StageResult(True, "credential")

    def _check_issuer(self, vc: VerifiableCredential, issuer_did: str) -> StageResult:
        if not compare_dids(issuer_did, self.issuer_did):
            return StageResult(False, "issuer", f"Unknown issuer: {issuer_did}")
        if not compare_dids(vc.issuer_did, self.issuer_did):
            return StageResult(False, "issuer", "Credential was not issued by this issuer")
        return StageResult(True, "issuer")

    def _check_revocation(self, vc: VerifiableCredential, issuer_did: str) -> StageResult:
        if self.is_revoked(vc.id):
            return StageResult(False, "revocation", "revoked")
        return StageResult(True, "revocation")

    def _check_signature(self, vc: VerifiableCredential, issuer_did: str) -> StageResult:
        if not vc.proof:
            return StageResult(True, "signature")

        key = self.key_manager.get_key(vc.proof.get("verificationMethod", ""))
        proof_value = vc.proof.get("proofValue")
        if key is None or not proof_value:
            return StageResult(False, "signature", "Unknown verification method")

        if not self.key_manager.verify_ed25519(key.public_key, vc.get_hash().encode(), proof_value):
            return StageResult(False, "signature", "Signature verification failed")
        return StageResult(True, "signature")

    def _check_query(self, vc: VerifiableCredential, query: Dict[str, Any]) -> StageResult:
        for claim, condition in query.items():
            value = vc.claim(claim)
            for operator, expected in (condition or {}).items():
                if not _evaluate(operator, value, expected):
                    return StageResult(
                        False, "query", f"Claim '{claim}' does not satisfy {operator} {json.dumps(expected)}"
                    )
        return StageResult(True, "query")


def _evaluate(operator: str, value: Any, expected: Any) -> bool:
    if value is None:
        return False
    if operator == "$eq":
        return value == expected
    if operator == "$ne":
        return value != expected
    try:
        if operator == "$lt":
            return value < expected
        if operator == "$gt":
            return value > expected
    except TypeError:
        return False
    return False
