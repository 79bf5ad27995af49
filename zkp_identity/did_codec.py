"""
DID Codec - Parse, validate and format Decentralized Identifiers

DID Format: did:<method>:<network>:<identifier>

The identifier is everything after the third colon and may itself
contain colons (e.g. did:polygonid:polygon:amoy:2qXYZ...).

None of these helpers raise: invalid input yields None / False /
a sentinel string.
"""

import re
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict

DID_PATTERN = re.compile(r"did:[a-z0-9]+:[a-z0-9]+:.+", re.IGNORECASE)

INVALID_DID = "Invalid DID"
INVALID_SHORT = "Invalid"


@dataclass(frozen=True)
class ParsedDID:
    """Components of a valid DID"""
    full: str
    method: str
    network: str
    identifier: str
    is_valid: bool = True

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["isValid"] = result.pop("is_valid")
        return result


def is_valid_did(value: Any) -> bool:
    """True iff value is a string matching did:<method>:<network>:<identifier>"""
    if not value or not isinstance(value, str):
        return False
    return DID_PATTERN.fullmatch(value) is not None


def _split(did: Any) -> Optional[list]:
    if not is_valid_did(did):
        return None
    return did.split(":")


def get_did_method(did: Any) -> Optional[str]:
    """Method segment (polygonid, ethr, key, ...)"""
    parts = _split(did)
    return parts[1] if parts else None


def get_did_network(did: Any) -> Optional[str]:
    """Network segment"""
    parts = _split(did)
    return parts[2] if parts else None


def get_did_identifier(did: Any) -> Optional[str]:
    """Everything after the third colon"""
    parts = _split(did)
    if not parts:
        return None
    return ":".join(parts[3:]) or None


def parse_did(did: Any) -> Optional[ParsedDID]:
    """
    Parse a DID into its components

    Returns:
        ParsedDID, or None if the DID is invalid
    """
    parts = _split(did)
    if not parts:
        return None
    return ParsedDID(
        full=did,
        method=parts[1],
        network=parts[2],
        identifier=":".join(parts[3:]),
    )


def format_did_short(did: Any, chars_to_show: int = 8) -> str:
    """
    Short display form of a DID

    Example: did:polygonid:polygon:amoy:2qXYZabcdef -> did:...abcdef (tail)

    Args:
        did: Full DID
        chars_to_show: How many trailing identifier characters to keep

    Returns:
        "did:...<tail>" when the identifier is longer than chars_to_show,
        the DID unchanged when it is not, "Invalid DID" for invalid input
    """
    identifier = get_did_identifier(did)
    if identifier is None:
        return INVALID_DID

    if len(identifier) <= chars_to_show:
        return did

    return f"did:...{identifier[-chars_to_show:]}"


def get_did_display_info(did: Any) -> Dict[str, Any]:
    """Aggregate view of a DID for presentation"""
    parsed = parse_did(did)

    if parsed is None:
        return {
            "valid": False,
            "short": INVALID_SHORT,
            "full": did,
        }

    return {
        "valid": True,
        "short": format_did_short(did),
        "full": did,
        "method": parsed.method,
        "network": parsed.network,
        "identifier": parsed.identifier,
    }


def compare_dids(did1: Any, did2: Any) -> bool:
    """True iff both DIDs are valid and equal ignoring case"""
    if not is_valid_did(did1) or not is_valid_did(did2):
        return False
    return did1.lower() == did2.lower()
