"""
Development backend for the ZKP identity client

Serves the endpoints the client consumes (register, login, wallet-auth,
logout, verify-session, verify-credential, proofs, user profile) from
memory, backed by a local IssuerNode. Not for production use.
"""

import os
import time
import hashlib
import secrets
import logging
from typing import Optional, Dict, Any

from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from zkp_identity.wallet import short_address, verify_wallet_signature

from .issuer import IssuerNode, make_did

logger = logging.getLogger("IssuerBackend")

MIN_PASSWORD_LENGTH = 6
PBKDF2_ITERATIONS = 100_000


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class WalletAuthRequest(BaseModel):
    walletAddress: Optional[str] = None
    signature: Optional[str] = None
    message: Optional[str] = None
    name: Optional[str] = None


class VerifyCredentialRequest(BaseModel):
    credential: Optional[Dict[str, Any]] = None
    issuerDID: Optional[str] = None
    proofType: Optional[str] = None
    query: Optional[Dict[str, Any]] = None


class ProofRequest(BaseModel):
    credential: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None


class ProofVerifyRequest(BaseModel):
    statement: Optional[str] = None
    signature: Optional[str] = None


def _error(status: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": message, **extra})


def _hash_password(password: str, salt: str) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS
    ).hex()


class UserStore:
    """In-memory accounts and bearer tokens"""

    def __init__(self, issuer: IssuerNode):
        self.issuer = issuer
        self._users: Dict[str, Dict[str, Any]] = {}  # email or wallet address -> record
        self._tokens: Dict[str, str] = {}  # token -> user key

    def create(self, key: str, profile: Dict[str, Any], auth_method: str,
               password: Optional[str] = None) -> Dict[str, Any]:
        did = make_did(key if auth_method == "wallet" else None)
        record = {
            "user": {"id": len(self._users) + 1, **profile},
            "did": did,
            "credential": self.issuer.issue_auth_credential(did, auth_method).to_dict(),
            "zkpData": self.issuer.create_zkp_data(did),
        }
        if password is not None:
            record["salt"] = secrets.token_hex(16)
            record["passwordHash"] = _hash_password(password, record["salt"])
        self._users[key] = record
        return record

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return self._users.get(key)

    def check_password(self, record: Dict[str, Any], password: str) -> bool:
        if "passwordHash" not in record:
            return False
        expected = _hash_password(password, record["salt"])
        return secrets.compare_digest(expected, record["passwordHash"])

    def issue_token(self, key: str) -> str:
        token = secrets.token_urlsafe(32)
        self._tokens[token] = key
        return token

    def revoke_token(self, token: str) -> None:
        self._tokens.pop(token, None)

    def user_for_token(self, authorization: Optional[str]) -> Optional[Dict[str, Any]]:
        if not authorization or not authorization.startswith("Bearer "):
            return None
        key = self._tokens.get(authorization[len("Bearer "):])
        return self._users.get(key) if key else None

    def auth_response(self, key: str) -> Dict[str, Any]:
        record = self._users[key]
        return {
            "success": True,
            "did": record["did"],
            "user": record["user"],
            "zkpData": record["zkpData"],
            "credential": record["credential"],
            "token": self.issue_token(key),
        }


def create_app(oracle_private_key: Optional[str] = None) -> FastAPI:
    issuer = IssuerNode(oracle_private_key=oracle_private_key)
    users = UserStore(issuer)

    app = FastAPI(title="ZKP Identity Dev Backend", version="1.0.0")
    app.state.issuer = issuer
    app.state.users = users

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==================== AUTH ====================

    @app.post("/api/register")
    async def register(body: RegisterRequest):
        if not body.name or not body.email or not body.password:
            return _error(400, "Name, email and password are required")
        if len(body.password) < MIN_PASSWORD_LENGTH:
            return _error(400, f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        email = body.email.lower()
        if users.get(email):
            return _error(409, "Email already registered")

        users.create(email, {"name": body.name, "email": email}, "email", password=body.password)
        logger.info(f"Registered {email}")
        return users.auth_response(email)

    @app.post("/api/login")
    async def login(body: LoginRequest):
        if not body.email or not body.password:
            return _error(400, "Email and password are required")

        email = body.email.lower()
        record = users.get(email)
        if record is None or not users.check_password(record, body.password):
            return _error(401, "Invalid email or password")
        return users.auth_response(email)

    @app.post("/api/wallet-auth")
    async def wallet_auth(body: WalletAuthRequest):
        if not body.walletAddress:
            return _error(400, "walletAddress is required")

        if body.signature:
            if not body.message or not verify_wallet_signature(
                body.message, body.signature, body.walletAddress
            ):
                return _error(401, "Invalid wallet signature")

        key = body.walletAddress.lower()
        if users.get(key) is None:
            name = body.name or f"Wallet {short_address(body.walletAddress)}"
            users.create(key, {"name": name, "walletAddress": body.walletAddress}, "wallet")
            logger.info(f"Created wallet account {short_address(body.walletAddress)}")
        return users.auth_response(key)

    @app.post("/api/logout")
    async def logout(authorization: Optional[str] = Header(None)):
        if authorization and authorization.startswith("Bearer "):
            users.revoke_token(authorization[len("Bearer "):])
        return {"success": True}

    @app.get("/api/verify-session")
    async def verify_session(authorization: Optional[str] = Header(None)):
        record = users.user_for_token(authorization)
        if record is None:
            return _error(401, "Invalid or expired session")
        return {"valid": True, "user": record["user"], "did": record["did"]}

    @app.get("/api/user/profile")
    async def user_profile(authorization: Optional[str] = Header(None)):
        record = users.user_for_token(authorization)
        if record is None:
            return _error(401, "Authentication required")
        return {"success": True, "user": record["user"], "did": record["did"]}

    # ==================== CREDENTIALS ====================

    @app.post("/api/verify-credential")
    async def verify_credential(body: VerifyCredentialRequest):
        if not body.credential:
            return _error(400, "Credential is required", requiresCredential=True)
        if not body.issuerDID:
            return _error(400, "issuerDID is required")
        return issuer.verify(body.credential, body.issuerDID, body.query)

    @app.post("/api/credentials/{credential_id}/revoke")
    async def revoke_credential(credential_id: str):
        if not issuer.revoke(credential_id):
            return _error(404, "Credential not found")
        return {"success": True, "revoked": credential_id}

    @app.post("/api/proofs/generate")
    async def generate_proof(body: ProofRequest):
        if not body.credential:
            return _error(400, "Credential is required", requiresCredential=True)

        result = issuer.verify(body.credential, issuer.issuer_did, body.query)
        if not result["verified"]:
            return _error(
                422, result["error"], zkpVerificationFailed=True, stage=result["stage"]
            )

        statement = f"{body.credential.get('id')}:{result['proof']['subject']}:{int(time.time())}"
        return {
            "success": True,
            "circuitId": "credentialAtomicQueryMTPV2",
            "query": body.query,
            "statement": statement,
            "signature": issuer.key_manager.sign_secp256k1(issuer.oracle_key.key_id, statement),
        }

    @app.post("/api/proofs/verify")
    async def verify_proof(body: ProofVerifyRequest):
        if not body.statement or not body.signature:
            return _error(400, "statement and signature are required")
        verified = issuer.key_manager.verify_secp256k1(
            body.statement, body.signature, issuer.oracle_address
        )
        return {"success": True, "verified": verified}

    @app.get("/api/issuer")
    async def issuer_info():
        return {
            "issuerDID": issuer.issuer_did,
            "oracleAddress": issuer.oracle_address,
            "supportedCircuits": ["credentialAtomicQueryMTPV2"],
        }

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.error(f"Error on {request.url.path}: {exc}")
        return _error(500, str(exc))

    return app


app = create_app(os.environ.get("ORACLE_PRIVATE_KEY"))
