"""Address validation utilities for callers of the registry (API, CLI)."""

import re

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_ADDRESS_IN_TEXT_RE = re.compile(r"0x[a-fA-F0-9]{40}")


def is_valid_address(address: str) -> bool:
    """Return True if address is a 0x-prefixed 20-byte hex address."""
    return bool(_ADDRESS_RE.match((address or "").strip()))


def normalize_address(address: str) -> str:
    """Strip and lowercase; the registry compares addresses case-insensitively."""
    return (address or "").strip().lower()


def extract_address(text: str) -> str | None:
    """Return the first address found in free text, or None."""
    match = _ADDRESS_IN_TEXT_RE.search(text or "")
    return match.group(0) if match else None
