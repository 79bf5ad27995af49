"""
Command line front end for the ZKP identity client

Usage:
    zkp-identity register --name Ana --email ana@example.com
    zkp-identity login --email ana@example.com
    zkp-identity wallet-login --private-key 0x...
    zkp-identity whoami
    zkp-identity verify --proof-type authMethod --auth-method email
    zkp-identity logout
"""

import sys
import json
import asyncio
import argparse
import getpass
import logging
from typing import Any, List, Optional

from .api_client import APIGateway
from .auth import AuthService
from .config import settings
from .did_codec import get_did_display_info
from .exceptions import ZKPIdentityError
from .models import UserProfile
from .session import SessionManager
from .storage import FileStorage
from .verification import CredentialVerifier, ProofType, verify_identity
from .wallet import LocalWallet


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def report_persisted(user: UserProfile, session_file: str) -> int:
    """Exit code for an authentication command"""
    if user.persisted:
        return 0
    print(f"Warning: session could not be saved to {session_file}; "
          "later commands will not be logged in", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zkp-identity", description="ZKP identity client")
    parser.add_argument("--backend", default=settings.BACKEND_URL, help="Backend base URL")
    parser.add_argument("--session-file", default=str(settings.SESSION_FILE))
    parser.add_argument("--timeout", type=float, default=settings.REQUEST_TIMEOUT)
    parser.add_argument("-v", "--verbose", action="store_true")

    sub = parser.add_subparsers(dest="command", required=True)

    register = sub.add_parser("register", help="Create an account")
    register.add_argument("--name", required=True)
    register.add_argument("--email", required=True)
    register.add_argument("--password")

    login = sub.add_parser("login", help="Log in with email and password")
    login.add_argument("--email", required=True)
    login.add_argument("--password")

    wallet = sub.add_parser("wallet-login", help="Log in with an Ethereum key")
    wallet.add_argument("--private-key", required=True)

    sub.add_parser("logout", help="End the session")
    sub.add_parser("whoami", help="Show the current user and DID")
    sub.add_parser("session", help="Show session expiry")

    verify = sub.add_parser("verify", help="Verify the stored credential")
    verify.add_argument(
        "--proof-type",
        choices=[p.value for p in ProofType],
        default=ProofType.IS_VERIFIED.value,
    )
    verify.add_argument("--issuer", help="Issuer DID (defaults to the credential issuer)")
    verify.add_argument("--auth-method", default="wallet")
    verify.add_argument("--state", default="active")
    verify.add_argument("--min-days", type=int, default=30)
    verify.add_argument("--require-issuer-node", action="store_true")

    return parser


async def run(args: argparse.Namespace) -> int:
    session = SessionManager(FileStorage(args.session_file))

    if args.command == "whoami":
        user = session.get_session()
        if user is None:
            print("Not logged in", file=sys.stderr)
            return 1
        print_json({"user": user, "did": get_did_display_info(user.get("did"))})
        return 0

    if args.command == "session":
        info = session.get_session_info()
        if info is None:
            print("No active session", file=sys.stderr)
            return 1
        print_json({
            "timestamp": info.timestamp,
            "expiresAt": info.expires_at,
            "remainingMs": info.remaining_ms(session.clock()),
        })
        return 0

    async with APIGateway(session, base_url=args.backend, timeout=args.timeout) as gateway:
        auth = AuthService(gateway, session)

        if args.command in ("register", "login", "wallet-login"):
            if args.command == "register":
                password = args.password or getpass.getpass("Password: ")
                user = await auth.register_user(args.name, args.email, password)
            elif args.command == "login":
                password = args.password or getpass.getpass("Password: ")
                user = await auth.login_user(args.email, password)
            else:
                user = await auth.authenticate_with_wallet(LocalWallet([args.private_key]))
            print_json(user.to_dict())
            return report_persisted(user, args.session_file)
        elif args.command == "logout":
            await auth.logout_user()
            print("Logged out")
        elif args.command == "verify":
            verifier = CredentialVerifier(gateway, require_issuer_node=args.require_issuer_node)
            result = await verify_identity(
                session,
                verifier,
                proof_type=ProofType(args.proof_type),
                issuer_did=args.issuer,
                auth_method=args.auth_method,
                state=args.state,
                min_days=args.min_days,
            )
            print_json(result.to_dict())
            return 0 if result.verified else 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else settings.LOG_LEVEL)

    try:
        return asyncio.run(run(args))
    except ZKPIdentityError as e:
        print_json(e.to_dict())
        return 1


if __name__ == "__main__":
    sys.exit(main())
