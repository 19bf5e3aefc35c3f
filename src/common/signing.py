"""HMAC-SHA256 signing with domain-separated keys.

Every caller names a key domain, so a signature produced for one purpose
(for example ticket QR tokens) can never be replayed against another, even
when the underlying secret is shared.

Key derivation:
    key = sha256("<domain>:<secret>")

Signatures are full-length hex digests and are compared with
hmac.compare_digest() to avoid timing side channels.
"""

import hashlib
import hmac

__all__ = [
    "SigningKeyMissing",
    "constant_time_equals",
    "derive_key",
    "generate_signature",
    "verify_signature",
]


class SigningKeyMissing(Exception):
    """Raised when signing is attempted without a secret."""


def derive_key(domain: str, secret: str) -> bytes:
    """Derive a signing key isolated to ``domain``.

    Raises:
        SigningKeyMissing: if the secret is empty.
    """
    if not secret:
        raise SigningKeyMissing(f"No signing secret configured for '{domain}'.")
    return hashlib.sha256(f"{domain}:{secret}".encode()).digest()


def generate_signature(message: str, *, domain: str, secret: str) -> str:
    """Sign a message, returning the hex encoded HMAC-SHA256 digest."""
    return hmac.new(derive_key(domain, secret), message.encode(), hashlib.sha256).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


def verify_signature(message: str, signature: str, *, domain: str, secret: str) -> bool:
    """Check a signature in constant time."""
    if not signature:
        return False
    expected = generate_signature(message, domain=domain, secret=secret)
    return constant_time_equals(signature, expected)
