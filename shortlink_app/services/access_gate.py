"""
Password gate for protected links.

Verification only: hashing new passwords happens on the write path through
``hash_password``; the gate itself never touches the datastore.
"""

from enum import Enum
from typing import Iterable, Optional

import bcrypt


class GateDecision(Enum):
    """Outcome of a gate check"""
    NOT_REQUIRED = "not_required"
    GRANTED = "granted"
    PASSWORD_REQUIRED = "password_required"
    DENIED = "denied"

    @property
    def allows_access(self) -> bool:
        return self in (GateDecision.NOT_REQUIRED, GateDecision.GRANTED)


def hash_password(secret: str, rounds: int = 12) -> str:
    """Hash a secret with bcrypt using a fixed work factor"""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def verify_password(secret: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison; malformed hashes never match"""
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AccessGate:
    """
    Verifies a supplied secret against the currently active password hashes.

    Any single match grants access (logical OR across active passwords).
    A failed check never reveals how many protections exist or which one
    was closest.
    """

    def authorize(
        self,
        password_hashes: Iterable[str],
        supplied: Optional[str]
    ) -> GateDecision:
        """
        Args:
            password_hashes: Hashes of the password protections active right now
            supplied: Secret provided by the caller, if any

        Returns:
            NOT_REQUIRED when no password is active, PASSWORD_REQUIRED when one is
            active but no secret was supplied, otherwise GRANTED or DENIED
        """
        hashes = list(password_hashes)
        if not hashes:
            return GateDecision.NOT_REQUIRED

        if not supplied:
            return GateDecision.PASSWORD_REQUIRED

        for password_hash in hashes:
            if verify_password(supplied, password_hash):
                return GateDecision.GRANTED

        return GateDecision.DENIED
