from __future__ import annotations
import re
from typing import Optional

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================
"""
Helper functions the envelope codec calls to decide if an inbound
value is properly formatted and safe to use.
"""

# Payloads travel as hex in JSON, either case, always whole bytes.
_HEX_RE = re.compile(r'^(?:[0-9a-fA-F]{2})*$')

UINT32_MAX = 0xFFFFFFFF

def is_hex_payload(s: str) -> bool:
    """
    returns True if the string is an even-length run of hex digits (empty allowed).
    """
    return bool(_HEX_RE.fullmatch(s))

def parse_uint32(s: str) -> Optional[int]:
    """
    Parse a decimal unsigned 32-bit integer.

    Returns None for signs, whitespace, non-digits or out of range values,
    so callers can decide how to report the failure.
    """
    if not s or not s.isascii() or not s.isdigit():
        return None
    value = int(s)
    if value > UINT32_MAX:
        return None
    return value

