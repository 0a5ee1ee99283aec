"""Credential hashing and one-time code helpers.

Credentials are never stored as given. :func:`hash_credential` derives a
salted scrypt digest and encodes it together with its parameters so the
cost can be raised later without invalidating stored hashes.

Encoded form::

    scrypt$<n>$<r>$<p>$<salt b64>$<digest b64>
"""

from __future__ import annotations

import base64
import hmac
import secrets

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

_SCHEME = "scrypt"
_SALT_BYTES = 16
_KEY_LENGTH = 32

#: Default scrypt cost parameters (n=2**14, r=8, p=1; ~16 MiB per derivation).
DEFAULT_N = 2**14
DEFAULT_R = 8
DEFAULT_P = 1


def _b64encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


def hash_credential(
    credential: str,
    *,
    n: int = DEFAULT_N,
    r: int = DEFAULT_R,
    p: int = DEFAULT_P,
) -> str:
    """Derive a salted scrypt hash of *credential*.

    Parameters
    ----------
    credential : str
        The secret as supplied by the user.
    n, r, p : int
        scrypt cost parameters.

    Returns
    -------
    str
        Self-describing encoded hash suitable for storage.
    """
    salt = secrets.token_bytes(_SALT_BYTES)
    kdf = Scrypt(salt=salt, length=_KEY_LENGTH, n=n, r=r, p=p)
    digest = kdf.derive(credential.encode("utf-8"))
    return f"{_SCHEME}${n}${r}${p}${_b64encode(salt)}${_b64encode(digest)}"


def verify_credential(credential: str, encoded: str) -> bool:
    """Check *credential* against a hash produced by :func:`hash_credential`.

    The digest comparison is constant-time. Malformed stored hashes verify
    as ``False`` rather than raising.
    """
    parts = encoded.split("$")
    if len(parts) != 6 or parts[0] != _SCHEME:
        return False
    try:
        n, r, p = (int(value) for value in parts[1:4])
        salt = _b64decode(parts[4])
        expected = _b64decode(parts[5])
    except ValueError:
        return False

    try:
        kdf = Scrypt(salt=salt, length=len(expected), n=n, r=r, p=p)
        kdf.verify(credential.encode("utf-8"), expected)
    except (InvalidKey, ValueError):
        return False
    return True


def generate_numeric_code(digits: int) -> str:
    """Uniform random code of exactly *digits* digits (no leading zero).

    For ``digits=6`` the range is 100000-999999.
    """
    low = 10 ** (digits - 1) if digits > 1 else 0
    high = 10**digits - 1
    return str(low + secrets.randbelow(high - low + 1))


def codes_match(supplied: str, stored: str) -> bool:
    """Constant-time code comparison."""
    return hmac.compare_digest(supplied.strip().encode("utf-8"), stored.encode("utf-8"))
