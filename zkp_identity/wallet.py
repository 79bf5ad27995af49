"""
Wallet capability - connect, sign, and follow account/chain changes

The browser extension (MetaMask) is an external collaborator; the client
only needs the surface described by WalletProvider. LocalWallet
implements that surface on top of eth_account so wallet login also
works from scripts and tests.

Provider errors use the EIP-1193 code 4001 for "user rejected".
"""

import logging
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_defunct

from .exceptions import (
    SignatureRejectedError,
    WalletConnectionRejectedError,
    WalletError,
    WalletUnavailableError,
)

logger = logging.getLogger("ZKPWallet")

USER_REJECTED = 4001


class WalletProviderError(Exception):
    """Error raised by a wallet provider, EIP-1193 style"""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class WalletEvents:
    """
    Subscription channel for wallet notifications

    Each emit() reaches the handlers subscribed at that moment, once.
    Nothing is buffered for late subscribers.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[[Any], None]] = []

    def subscribe(self, handler: Callable[[Any], None]) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, value: Any) -> None:
        logger.info(f"[Wallet] {self.name}: {value}")
        for handler in list(self._handlers):
            handler(value)

    def __len__(self) -> int:
        return len(self._handlers)


@runtime_checkable
class WalletProvider(Protocol):
    """What the client needs from a wallet"""

    async def request_accounts(self) -> List[str]:
        ...

    async def personal_sign(self, message: str, address: str) -> str:
        ...

    def on_accounts_changed(self, callback: Callable[[Optional[str]], None]) -> Callable[[], None]:
        ...

    def on_chain_changed(self, callback: Callable[[str], None]) -> Callable[[], None]:
        ...


class LocalWallet:
    """
    eth_account-backed wallet provider

    Args:
        private_keys: Hex private keys; a fresh account is created if empty
        chain_id: Hex chain id reported to chain listeners
        approve: Optional hook (kind, payload) -> bool deciding whether the
            "user" accepts a request; kind is "connect" or "sign"
    """

    def __init__(
        self,
        private_keys: Optional[List[str]] = None,
        chain_id: str = "0x13882",  # Polygon Amoy
        approve: Optional[Callable[[str, Dict[str, Any]], bool]] = None,
    ):
        keys = private_keys or [Account.create().key.hex()]
        self._accounts = [Account.from_key(key) for key in keys]
        self._active = 0
        self._connected = False
        self.chain_id = chain_id
        self.approve = approve
        self.accounts_changed = WalletEvents("accountsChanged")
        self.chain_changed = WalletEvents("chainChanged")

    @property
    def address(self) -> Optional[str]:
        if not self._accounts:
            return None
        return self._accounts[self._active].address

    def _check_approval(self, kind: str, payload: Dict[str, Any]) -> None:
        if self.approve is not None and not self.approve(kind, payload):
            raise WalletProviderError(USER_REJECTED, "User rejected the request.")

    async def request_accounts(self) -> List[str]:
        self._check_approval("connect", {"accounts": [a.address for a in self._accounts]})
        self._connected = True
        return [self.address] if self.address else []

    async def personal_sign(self, message: str, address: str) -> str:
        account = next(
            (a for a in self._accounts if a.address.lower() == address.lower()), None
        )
        if account is None:
            raise WalletProviderError(4100, f"Unknown account: {address}")

        self._check_approval("sign", {"message": message, "address": address})
        signed = account.sign_message(encode_defunct(text=message))
        signature = signed.signature.hex()
        return signature if signature.startswith("0x") else f"0x{signature}"

    def on_accounts_changed(self, callback: Callable[[Optional[str]], None]) -> Callable[[], None]:
        return self.accounts_changed.subscribe(callback)

    def on_chain_changed(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self.chain_changed.subscribe(callback)

    # ==================== SIMULATED USER ACTIONS ====================

    def switch_account(self, index: int) -> None:
        self._active = index
        self.accounts_changed.emit(self.address)

    def disconnect(self) -> None:
        self._connected = False
        self.accounts_changed.emit(None)

    def switch_chain(self, chain_id: str) -> None:
        self.chain_id = chain_id
        self.chain_changed.emit(chain_id)


# ==================== CLIENT HELPERS ====================

async def connect_wallet(provider: Optional[WalletProvider]) -> str:
    """
    Ask the wallet for its accounts and return the first address

    Raises:
        WalletUnavailableError: no provider
        WalletConnectionRejectedError: user said no (4001)
        WalletError: any other provider failure, or no accounts
    """
    if provider is None:
        raise WalletUnavailableError()

    logger.info("[Wallet] Requesting wallet connection...")
    try:
        accounts = await provider.request_accounts()
    except WalletProviderError as e:
        logger.error(f"[Wallet] Error connecting wallet: {e.message}")
        if e.code == USER_REJECTED:
            raise WalletConnectionRejectedError() from e
        raise WalletError(e.message, details={"providerCode": e.code}) from e

    if not accounts:
        raise WalletError("The wallet did not return any account")

    address = accounts[0]
    logger.info(f"[Wallet] Wallet connected: {short_address(address)}")
    return address


async def sign_message(provider: Optional[WalletProvider], address: str, message: str) -> str:
    """
    Ask the wallet to sign message with address

    Raises:
        SignatureRejectedError: user said no (4001)
    """
    if provider is None:
        raise WalletUnavailableError()

    logger.info("[Wallet] Requesting message signature...")
    try:
        signature = await provider.personal_sign(message, address)
    except WalletProviderError as e:
        logger.error(f"[Wallet] Error signing message: {e.message}")
        if e.code == USER_REJECTED:
            raise SignatureRejectedError() from e
        raise WalletError(e.message, details={"providerCode": e.code}) from e

    logger.info("[Wallet] Message signed")
    return signature


def build_login_message(address: str, nonce: Optional[str] = None) -> str:
    """Human readable challenge the wallet signs to prove ownership"""
    nonce = nonce or secrets.token_hex(8)
    issued_at = datetime.utcnow().isoformat() + "Z"
    return (
        "Sign in to ZKP Identity\n"
        f"Address: {address}\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {issued_at}"
    )


def verify_wallet_signature(message: str, signature: str, expected_address: str) -> bool:
    """True if signature over message was produced by expected_address"""
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception:
        return False
    return recovered.lower() == expected_address.lower()


def short_address(address: str) -> str:
    """0x1234...abcd"""
    if not address or len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"
