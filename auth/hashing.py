"""
auth/hashing.py -- One-way adaptive hashing for passwords.

bcrypt is used directly (no passlib wrapper). Its cost factor is taken from
Settings.bcrypt_rounds, so brute-forcing a stolen digest stays expensive and
the factor can be raised as hardware improves. bcrypt.checkpw compares digests
in constant time.

bcrypt only looks at the first 72 bytes of its input. Secrets are therefore
pre-hashed: base64(SHA-256(secret)) is 44 bytes, so every character of a long
passphrase contributes to the digest (the same construction as passlib's
bcrypt_sha256 scheme).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import hashlib

import bcrypt


def _prehash(secret: str) -> bytes:
    return base64.b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class CredentialHasher:
    """Hash and verify secrets with salted bcrypt.

    Usage:
        hasher = CredentialHasher(rounds=12)
        digest = hasher.hash("correct horse battery staple")
        hasher.verify("correct horse battery staple", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Timing equalization dummy hash. Computed once so callers can burn a
        # full bcrypt verification when the account does not exist, keeping
        # "unknown email" and "wrong password" indistinguishable by latency.
        self._dummy_hash = self.hash("finder_timing_dummy")

    def hash(self, secret: str) -> str:
        """Return a salted bcrypt digest of secret."""
        return bcrypt.hashpw(_prehash(secret), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, secret: str, digest: str) -> bool:
        """Return True if secret matches digest. Malformed digests never match."""
        try:
            return bcrypt.checkpw(_prehash(secret), digest.encode("utf-8"))
        except ValueError:
            return False

    def burn(self, secret: str) -> None:
        """Run a verification whose result is discarded (timing equalization)."""
        self.verify(secret, self._dummy_hash)
