"""Password hashing (Argon2)."""

from argon2 import PasswordHasher, exceptions as argon_exc


class PasswordHasherClient:
    """
    One-way password hashing with a configurable cost factor.

    time_cost is the number of Argon2 iterations; tests lower it to keep
    hashing fast.
    """

    def __init__(self, time_cost: int = 3):
        self._ph = PasswordHasher(time_cost=max(1, time_cost))

    def hash(self, password: str) -> str:
        return self._ph.hash(password)

    def verify(self, password: str, stored_hash: str) -> bool:
        if not stored_hash:
            # Accounts created through an external provider have no password
            return False
        try:
            return self._ph.verify(stored_hash, password)
        except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
            return False
