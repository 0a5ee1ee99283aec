"""Credential hashing and one-time code primitives."""

from __future__ import annotations

from pyumbrella._crypto.hashing import codes_match, generate_numeric_code, hash_credential, verify_credential

__all__ = [
    "codes_match",
    "generate_numeric_code",
    "hash_credential",
    "verify_credential",
]
