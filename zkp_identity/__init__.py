"""
ZKP Identity Client
===================

Client-side identity session and credential verification for a
DID / Verifiable Credential backend.

Components:
- did_codec: Parse, validate and format DIDs
- SessionManager: One persisted session with a 24h sliding TTL
- APIGateway: Authenticated HTTP client with centralized error handling
- AuthService: Register, login, wallet login, logout
- CredentialVerifier: Staged verification of the stored credential

Standards:
- W3C DID Core 1.0: https://www.w3.org/TR/did-core/
- W3C Verifiable Credentials: https://www.w3.org/TR/vc-data-model/
"""

from .did_codec import (
    ParsedDID,
    is_valid_did,
    get_did_method,
    get_did_network,
    get_did_identifier,
    parse_did,
    format_did_short,
    get_did_display_info,
    compare_dids,
)
from .models import AuthMethod, UserProfile, VerifiableCredential
from .storage import KeyValueStorage, MemoryStorage, FileStorage
from .session import Session, SessionCodec, SessionManager, SESSION_TTL_MS
from .api_client import APIGateway, APIResponse, API_ENDPOINTS
from .wallet import LocalWallet, WalletEvents, WalletProvider, WalletProviderError
from .auth import AuthService
from .verification import (
    CredentialVerifier,
    ProofType,
    VerificationMethod,
    VerificationProof,
    VerificationResult,
    VerificationStatus,
    build_proof_query,
    verify_identity,
)
from .exceptions import ErrorKind, ZKPIdentityError

__version__ = "1.0.0"
__all__ = [
    # DID
    "ParsedDID",
    "is_valid_did",
    "get_did_method",
    "get_did_network",
    "get_did_identifier",
    "parse_did",
    "format_did_short",
    "get_did_display_info",
    "compare_dids",

    # Models
    "AuthMethod",
    "UserProfile",
    "VerifiableCredential",

    # Session
    "KeyValueStorage",
    "MemoryStorage",
    "FileStorage",
    "Session",
    "SessionCodec",
    "SessionManager",
    "SESSION_TTL_MS",

    # Gateway / auth
    "APIGateway",
    "APIResponse",
    "API_ENDPOINTS",
    "AuthService",

    # Wallet
    "LocalWallet",
    "WalletEvents",
    "WalletProvider",
    "WalletProviderError",

    # Verification
    "CredentialVerifier",
    "ProofType",
    "VerificationMethod",
    "VerificationProof",
    "VerificationResult",
    "VerificationStatus",
    "build_proof_query",
    "verify_identity",

    # Errors
    "ErrorKind",
    "ZKPIdentityError",
]
