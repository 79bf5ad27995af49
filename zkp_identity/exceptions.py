"""
Exceptions for the ZKP identity client.

Every failure the client can surface is one of the kinds in ErrorKind.
Backend payloads are converted to these classes once, at the gateway,
so callers match on ``code`` instead of probing response fields.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Closed set of failure kinds"""
    INVALID_INPUT = "INVALID_INPUT"
    NO_CREDENTIAL = "NO_CREDENTIAL"
    INCOMPLETE_CREDENTIAL = "INCOMPLETE_CREDENTIAL"
    NO_ISSUER = "NO_ISSUER"
    NO_SESSION = "NO_SESSION"
    REQUEST_SETUP = "REQUEST_SETUP"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    BACKEND_REJECTION = "BACKEND_REJECTION"
    UNAUTHORIZED = "UNAUTHORIZED"
    CREDENTIAL_REQUIRED = "CREDENTIAL_REQUIRED"
    ZKP_VERIFICATION_FAILED = "ZKP_VERIFICATION_FAILED"
    WALLET_UNAVAILABLE = "WALLET_UNAVAILABLE"
    WALLET_ERROR = "WALLET_ERROR"
    WALLET_CONNECTION_REJECTED = "WALLET_CONNECTION_REJECTED"
    SIGNATURE_REJECTED = "SIGNATURE_REJECTED"


class ZKPIdentityError(Exception):
    """
    Base exception for all client errors.

    Attributes:
        message: Human readable text
        code: ErrorKind value
        details: Structured context (stage, reason, status, ...)
    """

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.kind.value
        self.details = details or {}

    @property
    def stage(self) -> Optional[str]:
        return self.details.get("stage")

    @property
    def reason(self) -> Optional[str]:
        return self.details.get("reason")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# ==================== INPUT ====================

class InvalidInputError(ZKPIdentityError):
    """Missing required fields or a password below the minimum length."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


# ==================== CREDENTIAL PRECONDITIONS ====================

class NoCredentialError(ZKPIdentityError):
    kind = ErrorKind.NO_CREDENTIAL

    def __init__(self, message: str = "No credential available to verify"):
        super().__init__(message, details={"stage": "credential"})


class IncompleteCredentialError(ZKPIdentityError):
    """The credential was issued without a subject or issuer."""

    kind = ErrorKind.INCOMPLETE_CREDENTIAL

    def __init__(self, missing: str):
        super().__init__(
            f"Credential is incomplete: missing {missing}",
            details={"stage": "credential", "reason": f"missing {missing}", "missing": missing},
        )
        self.missing = missing


class NoIssuerError(ZKPIdentityError):
    kind = ErrorKind.NO_ISSUER

    def __init__(self, message: str = "Could not resolve an issuer DID for the credential"):
        super().__init__(message, details={"stage": "issuer"})


class NoSessionError(ZKPIdentityError):
    kind = ErrorKind.NO_SESSION

    def __init__(self, message: str = "No active session"):
        super().__init__(message)


# ==================== GATEWAY ====================

class RequestSetupError(ZKPIdentityError):
    """The request could not be built; nothing was sent."""

    kind = ErrorKind.REQUEST_SETUP

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, details={"url": url, "reason": message})
        self.url = url


class TransportError(ZKPIdentityError):
    """The request was sent but no response arrived."""

    kind = ErrorKind.TRANSPORT_FAILURE

    def __init__(self, message: str, url: Optional[str] = None, timeout: bool = False):
        super().__init__(message, details={"url": url, "timeout": timeout, "reason": message})
        self.url = url
        self.timeout = timeout


class BackendRejectionError(ZKPIdentityError):
    """The backend answered with a non-2xx status."""

    kind = ErrorKind.BACKEND_REJECTION

    def __init__(self, status: int, data: Any = None, url: Optional[str] = None,
                 message: Optional[str] = None):
        body = data if isinstance(data, dict) else {}
        reason = body.get("error") or body.get("message") or body.get("detail")
        details = {"status": status, "data": data, "url": url}
        if reason:
            details["reason"] = reason
        if body.get("stage"):
            details["stage"] = body["stage"]
        super().__init__(message or reason or f"Backend responded with HTTP {status}", details=details)
        self.status = status
        self.data = data
        self.url = url


class UnauthorizedError(BackendRejectionError):
    kind = ErrorKind.UNAUTHORIZED


class CredentialRequiredError(BackendRejectionError):
    """Backend demands a credential before it will continue."""

    kind = ErrorKind.CREDENTIAL_REQUIRED


class ZKPVerificationFailedError(BackendRejectionError):
    """Backend refused the request because its ZKP check failed."""

    kind = ErrorKind.ZKP_VERIFICATION_FAILED


# ==================== WALLET ====================

class WalletError(ZKPIdentityError):
    kind = ErrorKind.WALLET_ERROR


class WalletUnavailableError(WalletError):
    kind = ErrorKind.WALLET_UNAVAILABLE

    def __init__(self, message: str = "No wallet provider is available"):
        super().__init__(message)


class WalletConnectionRejectedError(WalletError):
    kind = ErrorKind.WALLET_CONNECTION_REJECTED

    def __init__(self, message: str = "User rejected the wallet connection"):
        super().__init__(message, details={"reason": "user_rejected", "providerCode": 4001})


class SignatureRejectedError(WalletError):
    kind = ErrorKind.SIGNATURE_REJECTED

    def __init__(self, message: str = "User rejected the signature request"):
        super().__init__(message, details={"reason": "user_rejected", "providerCode": 4001})
