"""
auth/passwords.py -- bcrypt password hashing on a bounded worker pool.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects.
bcrypt 5 also refuses to hash such input instead of truncating it, so hash()
raises PasswordTooLong past MAX_PASSWORD_BYTES and verify() reports a
mismatch. The limit counts UTF-8 bytes: 60 accented characters exceed it.

Hashing is CPU-bound and deliberately slow. PasswordHasher runs every hash and
comparison on its own ThreadPoolExecutor so the number of concurrent bcrypt
computations is capped independently of the request threadpool; callers block
on the returned future.

Timing equalization: verify_dummy() burns one bcrypt comparison against a
hash computed at construction time. CredentialStore calls it when the email is
unknown, so "no such user" and "wrong password" cost the same.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import concurrent.futures
import logging

import bcrypt

from auth.errors import PasswordTooLong

logger = logging.getLogger("authcore.auth")

DEFAULT_ROUNDS = 12
DEFAULT_WORKERS = 4
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted one-way password hashing with a capped worker pool.

    Usage:
        hasher = PasswordHasher(rounds=12, max_workers=4)
        hashed = hasher.hash("secret")
        hasher.verify("secret", hashed)  # True
        hasher.shutdown()
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS, max_workers: int = DEFAULT_WORKERS) -> None:
        self.rounds = rounds
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="pwhash",
        )
        self._dummy_hash = self.hash("authcore_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the plaintext password.

        Raises PasswordTooLong when the UTF-8 encoding exceeds
        MAX_PASSWORD_BYTES.
        """
        size = len(plain.encode("utf-8"))
        if size > MAX_PASSWORD_BYTES:
            raise PasswordTooLong(f"password is {size} bytes")
        return self._executor.submit(self._hash, plain).result()

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash."""
        return self._executor.submit(self._check, plain, hashed).result()

    def verify_dummy(self, plain: str) -> None:
        """Run a comparison whose result is discarded, to equalize timing."""
        self.verify(plain, self._dummy_hash)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def _hash(self, plain: str) -> str:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    @staticmethod
    def _check(plain: str, hashed: str) -> bool:
        encoded = plain.encode("utf-8")
        try:
            # Over-long input still costs one full comparison.
            matched = bcrypt.checkpw(encoded[:MAX_PASSWORD_BYTES], hashed.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password hash is malformed")
            return False
        # Nothing longer than the limit is ever hashed, so it cannot match.
        return matched and len(encoded) <= MAX_PASSWORD_BYTES
