"""
Authentication actions
======================

Register, login, wallet login and logout on top of the API gateway.
A successful authentication stores the returned user payload
(DID, credential, zkpData, token) in the session.
"""

import logging
from typing import Callable, List, Optional

from .api_client import APIGateway, APIResponse
from .config import settings
from .did_codec import format_did_short
from .models import AuthMethod, UserProfile
from .session import SessionManager
from .wallet import (
    WalletProvider,
    build_login_message,
    connect_wallet,
    short_address,
    sign_message,
)
from .exceptions import InvalidInputError, ZKPIdentityError

logger = logging.getLogger("ZKPAuth")


class AuthService:
    """
    User-facing authentication operations

    Input is validated locally; invalid input never reaches the network.
    """

    def __init__(
        self,
        gateway: APIGateway,
        session: SessionManager,
        min_password_length: int = settings.MIN_PASSWORD_LENGTH,
    ):
        self.gateway = gateway
        self.session = session
        self.min_password_length = min_password_length

    # ==================== VALIDATION ====================

    @staticmethod
    def _require(**fields: Optional[str]) -> None:
        for name, value in fields.items():
            if value is None or not str(value).strip():
                raise InvalidInputError(f"Field '{name}' is required", field=name)

    def _check_password(self, password: str) -> None:
        if len(password) < self.min_password_length:
            raise InvalidInputError(
                f"Password must be at least {self.min_password_length} characters",
                field="password",
            )

    # ==================== EMAIL / PASSWORD ====================

    async def register_user(self, name: str, email: str, password: str) -> UserProfile:
        """
        Register a new user with email and password

        Returns:
            UserProfile carrying the DID and credential issued at registration
        """
        self._require(name=name, email=email, password=password)
        self._check_password(password)

        logger.info(f"[Auth] Registering user {email}")
        response = await self.gateway.register(name, email, password)
        user = self._store(response, AuthMethod.EMAIL_PASSWORD)

        logger.info(
            f"[Auth] Registration successful: did={format_did_short(user.did)} "
            f"credential={'yes' if user.credential else 'no'}"
        )
        return user

    async def login_user(self, email: str, password: str) -> UserProfile:
        self._require(email=email, password=password)

        logger.info(f"[Auth] Logging in {email}")
        response = await self.gateway.login(email, password)
        user = self._store(response, AuthMethod.EMAIL_PASSWORD)

        logger.info(f"[Auth] Login successful: did={format_did_short(user.did)}")
        return user

    # ==================== WALLET ====================

    async def authenticate_with_wallet(
        self,
        provider: Optional[WalletProvider],
        message: Optional[str] = None,
    ) -> UserProfile:
        """
        Connect the wallet, sign a login challenge and authenticate

        A rejected connection or signature stops here: the backend is not
        called and the stored session is left as it was.

        Raises:
            WalletConnectionRejectedError, SignatureRejectedError, WalletError
        """
        address = await connect_wallet(provider)
        message = message or build_login_message(address)
        signature = await sign_message(provider, address, message)

        logger.info(f"[Auth] Authenticating wallet {short_address(address)}")
        response = await self.gateway.wallet_auth(
            address,
            signature=signature,
            name=f"Wallet {short_address(address)}",
            message=message,
        )
        user = self._store(response, AuthMethod.WALLET, wallet_address=address)

        logger.info(f"[Auth] Wallet authentication successful: did={format_did_short(user.did)}")
        return user

    def watch_wallet(self, provider: WalletProvider) -> List[Callable[[], None]]:
        """
        Follow wallet account/chain changes for the current session

        A disconnected wallet (None) or a switch to another account ends
        the wallet session. Returns the unsubscribe handles.
        """
        def accounts_changed(address: Optional[str]) -> None:
            user = self.session.get_session()
            if user is None or user.get("type") != AuthMethod.WALLET.value:
                return
            current = user.get("walletAddress") or ""
            if address is None or address.lower() != current.lower():
                logger.warning("[Auth] Wallet account changed, ending session")
                self.session.clear_session()

        def chain_changed(chain_id: str) -> None:
            logger.info(f"[Auth] Wallet network changed to {chain_id}")

        return [
            provider.on_accounts_changed(accounts_changed),
            provider.on_chain_changed(chain_changed),
        ]

    # ==================== SESSION ====================

    async def logout_user(self) -> None:
        """Tell the backend (best effort) and always drop the local session"""
        logger.info("[Auth] Logging out")
        if self.session.has_active_session():
            try:
                await self.gateway.logout()
            except ZKPIdentityError as e:
                logger.warning(f"[Auth] Backend logout failed: {e.code} {e.message}")
        self.session.clear_session()

    def get_current_user(self) -> Optional[UserProfile]:
        data = self.session.get_session()
        return UserProfile.from_dict(data) if data else None

    def is_authenticated(self) -> bool:
        return self.session.has_active_session()

    def _store(
        self,
        response: APIResponse,
        auth_method: AuthMethod,
        wallet_address: Optional[str] = None,
    ) -> UserProfile:
        data = response.data if isinstance(response.data, dict) else {}
        user = UserProfile.from_auth_response(data, auth_method, wallet_address=wallet_address)
        user.persisted = self.session.save_session(user.to_dict())
        if not user.persisted:
            logger.error("[Auth] Session could not be persisted; the user will not stay logged in")
        return user
