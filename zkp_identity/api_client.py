"""
API Gateway - the single HTTP client for the identity backend

Every backend call goes through APIGateway so that bearer-token
injection, session renewal and failure classification are applied
the same way everywhere.

Failure kinds:
- RequestSetupError: request could not be built, nothing was sent
- TransportError: no usable response (connection error, timeout,
  undecodable body)
- BackendRejectionError (and subclasses): response with non-2xx status
"""

import logging
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass

import httpx

from .config import settings
from .session import SessionManager
from .exceptions import (
    BackendRejectionError,
    CredentialRequiredError,
    RequestSetupError,
    TransportError,
    UnauthorizedError,
    ZKPVerificationFailedError,
)

logger = logging.getLogger("ZKPGateway")


API_ENDPOINTS = {
    "AUTH": {
        "REGISTER": "/api/register",
        "LOGIN": "/api/login",
        "WALLET_AUTH": "/api/wallet-auth",
        "LOGOUT": "/api/logout",
        "VERIFY_SESSION": "/api/verify-session",
    },
    "CREDENTIALS": {
        "VERIFY": "/api/verify-credential",
    },
    "PROOFS": {
        "GENERATE": "/api/proofs/generate",
        "VERIFY": "/api/proofs/verify",
    },
    "USER": {
        "PROFILE": "/api/user/profile",
    },
}


@dataclass
class APIResponse:
    """Successful (2xx) backend answer"""
    status: int
    data: Any
    url: str = ""

    def get(self, key: str, default: Any = None) -> Any:
        if isinstance(self.data, dict):
            return self.data.get(key, default)
        return default


def _default_navigator(entry_point: str) -> None:
    logger.warning(f"[API] Session rejected, returning to {entry_point}")


def _response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def classify_rejection(status: int, data: Any, url: str) -> BackendRejectionError:
    """Turn a non-2xx answer into its typed failure"""
    if status == 401:
        return UnauthorizedError(status, data, url)

    body = data if isinstance(data, dict) else {}
    if body.get("requiresCredential"):
        return CredentialRequiredError(status, data, url)
    if body.get("zkpVerificationFailed"):
        return ZKPVerificationFailedError(status, data, url)
    return BackendRejectionError(status, data, url)


class APIGateway:
    """
    Async HTTP client bound to one backend and one session store

    Usage:
        async with APIGateway(session_manager) as api:
            response = await api.login("a@b.com", "secret1")
    """

    def __init__(
        self,
        session: SessionManager,
        base_url: str = settings.BACKEND_URL,
        timeout: float = settings.REQUEST_TIMEOUT,
        on_unauthorized: Optional[Callable[[str], None]] = None,
        entry_point: str = settings.ENTRY_POINT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            session: Session store used for token injection and renewal
            base_url: Backend base URL
            timeout: Per-request timeout in seconds
            on_unauthorized: Navigator called with entry_point after a 401
            entry_point: Unauthenticated entry point of the front end
            transport: Custom httpx transport (tests, ASGI apps)
        """
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.entry_point = entry_point
        self.on_unauthorized = on_unauthorized or _default_navigator
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "APIGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ==================== INTERCEPTORS ====================

    def _before_request(self, request: httpx.Request) -> None:
        """Attach the bearer token and keep an in-use session alive"""
        logger.info(f"[API Request] {request.method} {request.url.path}")

        user = self.session.get_session()
        if user is None:
            return

        token = user.get("token")
        if token:
            request.headers["Authorization"] = f"Bearer {token}"

        self.session.renew_session()

    def _after_response(self, response: httpx.Response) -> APIResponse:
        url = str(response.request.url)
        data = _response_body(response)

        if response.is_success:
            logger.info(f"[API Response] {response.status_code} {response.request.url.path}")
            return APIResponse(status=response.status_code, data=data, url=url)

        logger.error(f"[API Response Error] status={response.status_code} url={url}")

        if response.status_code == 401:
            self.session.clear_session()
            self.on_unauthorized(self.entry_point)

        raise classify_rejection(response.status_code, data, url)

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """
        Send one request through the interceptors

        Raises:
            RequestSetupError, TransportError, BackendRejectionError
        """
        try:
            request = self._client.build_request(method, path, json=json)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            logger.error(f"[API Setup Error] {e}")
            raise RequestSetupError(str(e), url=f"{self.base_url}{path}") from e

        self._before_request(request)

        try:
            response = await self._client.send(request)
        except httpx.UnsupportedProtocol as e:
            logger.error(f"[API Setup Error] {e}")
            raise RequestSetupError(str(e), url=str(request.url)) from e
        except httpx.TimeoutException as e:
            logger.error(f"[API No Response] timeout after {self.timeout}s: {request.url}")
            raise TransportError(
                f"Request timed out after {self.timeout}s", url=str(request.url), timeout=True
            ) from e
        except httpx.TransportError as e:
            logger.error(f"[API No Response] {e}")
            raise TransportError(str(e) or type(e).__name__, url=str(request.url)) from e
        except httpx.RequestError as e:
            # undecodable body, redirect loop: no usable response
            logger.error(f"[API Unusable Response] {type(e).__name__}: {e}")
            raise TransportError(str(e) or type(e).__name__, url=str(request.url)) from e

        return self._after_response(response)

    # ==================== ENDPOINTS ====================

    async def register(self, name: str, email: str, password: str) -> APIResponse:
        return await self.request(
            "POST", API_ENDPOINTS["AUTH"]["REGISTER"],
            json={"name": name, "email": email, "password": password},
        )

    async def login(self, email: str, password: str) -> APIResponse:
        return await self.request(
            "POST", API_ENDPOINTS["AUTH"]["LOGIN"],
            json={"email": email, "password": password},
        )

    async def wallet_auth(
        self,
        wallet_address: str,
        signature: Optional[str] = None,
        name: Optional[str] = None,
        message: Optional[str] = None,
    ) -> APIResponse:
        payload: Dict[str, Any] = {"walletAddress": wallet_address}
        if signature is not None:
            payload["signature"] = signature
        if message is not None:
            payload["message"] = message
        if name is not None:
            payload["name"] = name
        return await self.request("POST", API_ENDPOINTS["AUTH"]["WALLET_AUTH"], json=payload)

    async def logout(self) -> APIResponse:
        return await self.request("POST", API_ENDPOINTS["AUTH"]["LOGOUT"])

    async def verify_session(self) -> APIResponse:
        return await self.request("GET", API_ENDPOINTS["AUTH"]["VERIFY_SESSION"])

    async def verify_credential(
        self,
        credential: Dict[str, Any],
        issuer_did: str,
        proof_type: Optional[str] = None,
        query: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        payload: Dict[str, Any] = {"credential": credential, "issuerDID": issuer_did}
        if proof_type is not None:
            payload["proofType"] = proof_type
        if query is not None:
            payload["query"] = query
        return await self.request("POST", API_ENDPOINTS["CREDENTIALS"]["VERIFY"], json=payload)

    async def generate_proof(self, proof_data: Dict[str, Any]) -> APIResponse:
        return await self.request("POST", API_ENDPOINTS["PROOFS"]["GENERATE"], json=proof_data)

    async def verify_proof(self, proof_data: Dict[str, Any]) -> APIResponse:
        return await self.request("POST", API_ENDPOINTS["PROOFS"]["VERIFY"], json=proof_data)

    async def get_user_profile(self) -> APIResponse:
        return await self.request("GET", API_ENDPOINTS["USER"]["PROFILE"])
