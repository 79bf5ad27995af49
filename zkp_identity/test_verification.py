"""
Credential Verification Tests

Covers the three terminal states (hard verified, soft rejection,
failure) and the local preconditions that must stop before the network.
"""

import httpx
import pytest

from zkp_identity.conftest import RecordingBackend
from zkp_identity.exceptions import (
    ErrorKind,
    IncompleteCredentialError,
    NoCredentialError,
    NoIssuerError,
)
from zkp_identity.models import VerifiableCredential
from zkp_identity.verification import (
    CredentialVerifier,
    ProofType,
    VerificationResult,
    VerificationStatus,
    build_proof_query,
    resolve_issuer_did,
    verify_identity,
)

ISSUER = "did:polygonid:polygon:amoy:2qIssuerNode"
HOLDER = "did:polygonid:polygon:amoy:2qHolder"

CREDENTIAL = {
    "@context": ["https://www.w3.org/2018/credentials/v1"],
    "id": "urn:uuid:cred-1",
    "type": ["VerifiableCredential", "ZKPAuthCredential"],
    "issuer": ISSUER,
    "issuanceDate": "2024-01-01T00:00:00Z",
    "credentialSubject": {"id": HOLDER, "isVerified": True, "authMethod": "wallet"},
    "credentialStatus": {"id": "urn:status:1", "type": "SparseMerkleTreeProof"},
}

ISSUER_NODE_ANSWER = {
    "success": True,
    "verified": True,
    "message": "Credential verified by issuer node",
    "proof": {
        "method": "issuer-node",
        "credentialId": "urn:uuid:cred-1",
        "subject": HOLDER,
        "notRevoked": True,
        "timestamp": "2024-06-01T00:00:00Z",
        "cryptographicProof": {
            "signature": "0xabc",
            "coreClaim": "claim-hex",
            "mtp": {"existence": True, "siblings": ["a", "b", "c"]},
        },
    },
    "fullData": {"issuer": ISSUER},
}

STRUCTURE_ANSWER = {
    "success": True,
    "verified": True,
    "proof": {"method": "structure", "credentialId": "urn:uuid:cred-1", "subject": HOLDER},
}

REVOKED_ANSWER = {
    "success": True,
    "verified": False,
    "error": "Credential has been revoked",
    "message": "revoked",
    "stage": "revocation",
}

USER = {
    "id": "u1",
    "did": HOLDER,
    "type": "wallet",
    "token": "tok-1",
    "credential": CREDENTIAL,
    "zkpData": {"identifier": "did:polygonid:polygon:amoy:2qZkpIdentifier"},
}


def verify_route(status, body):
    return RecordingBackend({"POST /api/verify-credential": (status, body)})


class TestPreconditions:
    """Nothing may reach the network when a precondition fails"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credential", [None, {}])
    async def test_no_credential(self, make_gateway, credential):
        backend = RecordingBackend()
        verifier = CredentialVerifier(make_gateway(backend))

        with pytest.raises(NoCredentialError):
            await verifier.verify(credential, issuer_did=ISSUER)
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_missing_subject(self, make_gateway):
        backend = RecordingBackend()
        verifier = CredentialVerifier(make_gateway(backend))
        credential = {k: v for k, v in CREDENTIAL.items() if k != "credentialSubject"}

        with pytest.raises(IncompleteCredentialError) as exc_info:
            await verifier.verify(credential)

        assert exc_info.value.reason == "missing credentialSubject"
        assert exc_info.value.stage == "credential"
        assert backend.requests == []
        print("✅ Incomplete credential stopped before the network")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credential", [
        "eyJhbGciOi.jwt.vc",
        ["not", "a", "credential"],
        {**CREDENTIAL, "credentialSubject": "did:a:b:c"},
    ])
    async def test_unreadable_credential_is_incomplete(self, make_gateway, credential):
        backend = RecordingBackend()
        verifier = CredentialVerifier(make_gateway(backend))

        with pytest.raises(IncompleteCredentialError) as exc_info:
            await verifier.verify(credential, issuer_did=ISSUER)

        assert exc_info.value.missing == "credentialSubject"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_no_issuer_anywhere(self, make_gateway):
        backend = RecordingBackend()
        verifier = CredentialVerifier(make_gateway(backend))
        credential = {k: v for k, v in CREDENTIAL.items() if k != "issuer"}

        with pytest.raises(NoIssuerError):
            await verifier.verify(credential, zkp_data={})
        assert backend.requests == []


class TestIssuerResolution:

    def setup_method(self):
        self.vc = VerifiableCredential.from_dict(CREDENTIAL)
        self.no_issuer = VerifiableCredential.from_dict(
            {k: v for k, v in CREDENTIAL.items() if k != "issuer"}
        )

    def test_explicit_issuer_wins(self):
        assert resolve_issuer_did(self.vc, "did:a:b:explicit") == "did:a:b:explicit"

    def test_credential_issuer(self):
        assert resolve_issuer_did(self.vc, None, {"identifier": "did:a:b:zkp"}) == ISSUER

    def test_issuer_object(self):
        vc = VerifiableCredential.from_dict({**CREDENTIAL, "issuer": {"id": ISSUER, "name": "Node"}})
        assert resolve_issuer_did(vc) == ISSUER

    def test_zkp_identifier_then_holder(self):
        assert resolve_issuer_did(self.no_issuer, None, {"identifier": "did:a:b:zkp"}, HOLDER) == "did:a:b:zkp"
        assert resolve_issuer_did(self.no_issuer, None, {"issuerDID": "did:a:b:iss"}, HOLDER) == "did:a:b:iss"
        assert resolve_issuer_did(self.no_issuer, None, None, HOLDER) == HOLDER

    def test_non_dict_zkp_data_ignored(self):
        assert resolve_issuer_did(self.no_issuer, None, "opaque-zkp-blob", HOLDER) == HOLDER

    def test_blank_values_skipped(self):
        assert resolve_issuer_did(self.no_issuer, "  ", {"identifier": ""}, HOLDER) == HOLDER
        assert resolve_issuer_did(self.no_issuer) is None


class TestClassification:

    @pytest.mark.asyncio
    async def test_hard_verified_by_issuer_node(self, make_gateway):
        backend = verify_route(200, ISSUER_NODE_ANSWER)
        verifier = CredentialVerifier(make_gateway(backend))

        result = await verifier.verify(CREDENTIAL, proof_type=ProofType.IS_VERIFIED)

        assert result.status == VerificationStatus.VERIFIED
        assert result.success and result.verified
        assert result.is_on_chain
        assert result.warning is None
        assert result.proof.not_revoked is True
        assert result.proof.cryptographic_proof.mtp_siblings == 3
        assert result.proof.cryptographic_proof.mtp_existence is True
        assert result.full_data == {"issuer": ISSUER}

        sent = backend.body()
        assert sent["credential"] == CREDENTIAL
        assert sent["issuerDID"] == ISSUER
        assert sent["proofType"] == "isVerified"
        assert sent["query"] == {"isVerified": {"$eq": True}}

    @pytest.mark.asyncio
    async def test_structure_verified_carries_warning(self, make_gateway):
        verifier = CredentialVerifier(make_gateway(verify_route(200, STRUCTURE_ANSWER)))

        result = await verifier.verify(CREDENTIAL)

        assert result.verified
        assert not result.is_on_chain
        assert result.proof.method == "structure"
        assert "structurally" in result.warning

    @pytest.mark.asyncio
    async def test_trust_policy_downgrades_structure(self, make_gateway):
        verifier = CredentialVerifier(
            make_gateway(verify_route(200, STRUCTURE_ANSWER)), require_issuer_node=True
        )

        result = await verifier.verify(CREDENTIAL)

        assert result.status == VerificationStatus.REJECTED
        assert result.stage == "trust"

    @pytest.mark.asyncio
    async def test_trust_policy_keeps_issuer_node(self, make_gateway):
        verifier = CredentialVerifier(
            make_gateway(verify_route(200, ISSUER_NODE_ANSWER)), require_issuer_node=True
        )
        assert (await verifier.verify(CREDENTIAL)).verified

    @pytest.mark.asyncio
    async def test_revoked_is_soft_rejection(self, session, navigations, make_gateway):
        session.save_session(USER)
        verifier = CredentialVerifier(make_gateway(verify_route(200, REVOKED_ANSWER)))

        result = await verifier.verify(CREDENTIAL, issuer_did=ISSUER)

        assert result.success is True
        assert result.verified is False
        assert result.status == VerificationStatus.REJECTED
        assert result.stage == "revocation"
        assert result.error == "Credential has been revoked"
        assert session.get_session() is not None
        assert navigations == []
        print("✅ Revoked credential reported without ending the session")

    @pytest.mark.asyncio
    async def test_legacy_status_rejection_is_soft(self, make_gateway):
        body = {"error": "Proof invalid", "zkpVerificationFailed": True, "stage": "query"}
        verifier = CredentialVerifier(make_gateway(verify_route(422, body)))

        result = await verifier.verify(CREDENTIAL)

        assert result.status == VerificationStatus.REJECTED
        assert result.stage == "query"

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_failed_result(self, make_gateway):
        def down(request):
            raise httpx.ConnectError("Connection refused", request=request)

        backend = RecordingBackend({"POST /api/verify-credential": down})
        verifier = CredentialVerifier(make_gateway(backend))

        result = await verifier.verify(CREDENTIAL)

        assert result.status == VerificationStatus.FAILED
        assert result.success is False
        assert result.error_code == ErrorKind.TRANSPORT_FAILURE.value
        assert result.details["reason"] == "Connection refused"

    @pytest.mark.asyncio
    async def test_server_error_becomes_failed_result(self, make_gateway):
        verifier = CredentialVerifier(make_gateway(verify_route(500, {"error": "Issuer node unreachable"})))

        result = await verifier.verify(CREDENTIAL)

        assert result.status == VerificationStatus.FAILED
        assert result.error == "Issuer node unreachable"
        assert result.details["status"] == 500

    @pytest.mark.asyncio
    async def test_undecodable_answer_becomes_failed_result(self, make_gateway):
        def broken_gzip(request):
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

        backend = RecordingBackend({"POST /api/verify-credential": broken_gzip})
        result = await CredentialVerifier(make_gateway(backend)).verify(CREDENTIAL)

        assert result.status == VerificationStatus.FAILED
        assert result.success is False
        assert result.error_code == ErrorKind.TRANSPORT_FAILURE.value

    @pytest.mark.asyncio
    async def test_verifiable_credential_instance_sent_unchanged(self, make_gateway):
        backend = verify_route(200, ISSUER_NODE_ANSWER)
        verifier = CredentialVerifier(make_gateway(backend))

        await verifier.verify(VerifiableCredential.from_dict(CREDENTIAL))

        assert backend.body()["credential"] == CREDENTIAL


class TestVerifyIdentity:

    @pytest.mark.asyncio
    async def test_no_session(self, session, make_gateway):
        backend = RecordingBackend()
        result = await verify_identity(session, CredentialVerifier(make_gateway(backend)))

        assert result.status == VerificationStatus.FAILED
        assert result.error_code == "NO_SESSION"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_session_without_credential(self, session, make_gateway):
        session.save_session({k: v for k, v in USER.items() if k != "credential"})
        result = await verify_identity(session, CredentialVerifier(make_gateway(RecordingBackend())))

        assert result.error_code == "NO_CREDENTIAL"
        assert result.stage == "credential"

    @pytest.mark.asyncio
    async def test_jwt_credential_in_session(self, session, make_gateway):
        session.save_session({**USER, "credential": "eyJhbGciOi.jwt.vc", "zkpData": "opaque"})
        backend = RecordingBackend()

        result = await verify_identity(session, CredentialVerifier(make_gateway(backend)))

        assert result.status == VerificationStatus.FAILED
        assert result.error_code == "INCOMPLETE_CREDENTIAL"
        assert result.stage == "credential"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_credential_without_issuer_uses_zkp_identifier(self, session, make_gateway):
        issuerless = {k: v for k, v in CREDENTIAL.items() if k != "issuer"}
        session.save_session({**USER, "credential": issuerless})
        backend = verify_route(200, STRUCTURE_ANSWER)

        result = await verify_identity(session, CredentialVerifier(make_gateway(backend)))

        assert result.verified
        assert backend.body()["issuerDID"] == "did:polygonid:polygon:amoy:2qZkpIdentifier"
        assert backend.body()["credential"] == issuerless

    @pytest.mark.asyncio
    async def test_uses_session_credential(self, session, make_gateway):
        session.save_session(USER)
        backend = verify_route(200, ISSUER_NODE_ANSWER)

        result = await verify_identity(
            session, CredentialVerifier(make_gateway(backend)),
            proof_type=ProofType.AUTH_METHOD, auth_method="wallet",
        )

        assert result.verified
        assert result.proof_type == "authMethod"
        assert backend.body()["query"] == {"authMethod": {"$eq": "wallet"}}
        assert backend.requests[0].headers["Authorization"] == "Bearer tok-1"


class TestProofQuery:

    NOW = 1_700_000_000

    def test_simple_predicates(self):
        assert build_proof_query(ProofType.IS_VERIFIED) == {"isVerified": {"$eq": True}}
        assert build_proof_query(ProofType.ACCOUNT_STATE, state="suspended") == {
            "accountState": {"$eq": "suspended"}
        }
        assert build_proof_query(ProofType.AUTH_METHOD, auth_method="email") == {
            "authMethod": {"$eq": "email"}
        }

    def test_account_age(self):
        query = build_proof_query(ProofType.ACCOUNT_AGE, min_days=30, now=self.NOW)
        assert query == {"registrationDate": {"$lt": self.NOW - 30 * 86400}}

    def test_combined(self):
        query = build_proof_query(
            ProofType.COMBINED,
            conditions={"isVerified": False, "accountState": "active", "minAge": 1},
            now=self.NOW,
        )
        assert query == {
            "isVerified": {"$eq": False},
            "accountState": {"$eq": "active"},
            "registrationDate": {"$lt": self.NOW - 86400},
        }
        assert build_proof_query(ProofType.COMBINED) == {}


class TestResultShape:

    def test_to_dict_omits_empty_fields(self):
        result = VerificationResult(success=True, verified=True, message="ok", checked_at="t")
        assert result.to_dict() == {
            "success": True,
            "verified": True,
            "status": "verified",
            "message": "ok",
            "proofType": "isVerified",
            "checkedAt": "t",
        }
