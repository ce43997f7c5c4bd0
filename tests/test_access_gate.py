"""
Tests for the password gate.
"""
import pytest

from shortlink_app.services.access_gate import (
    AccessGate, GateDecision, hash_password, verify_password,
)

ROUNDS = 4


@pytest.fixture(scope="module")
def hashes():
    return {
        "alpha": hash_password("alpha-secret", rounds=ROUNDS),
        "beta": hash_password("beta-secret", rounds=ROUNDS),
    }


class TestAccessGate:

    def test_no_active_passwords_not_required(self):
        assert AccessGate().authorize([], None) is GateDecision.NOT_REQUIRED
        assert AccessGate().authorize([], "anything") is GateDecision.NOT_REQUIRED

    def test_missing_secret_signals_password_required(self, hashes):
        gate = AccessGate()

        assert gate.authorize([hashes["alpha"]], None) is GateDecision.PASSWORD_REQUIRED
        assert gate.authorize([hashes["alpha"]], "") is GateDecision.PASSWORD_REQUIRED

    def test_any_matching_password_grants(self, hashes):
        """Logical OR: the second password matching is enough"""
        gate = AccessGate()
        active = [hashes["alpha"], hashes["beta"]]

        assert gate.authorize(active, "beta-secret") is GateDecision.GRANTED
        assert gate.authorize(active, "alpha-secret") is GateDecision.GRANTED

    def test_wrong_secret_denied(self, hashes):
        gate = AccessGate()

        assert gate.authorize([hashes["alpha"], hashes["beta"]], "gamma") is GateDecision.DENIED

    def test_allows_access(self):
        assert GateDecision.NOT_REQUIRED.allows_access
        assert GateDecision.GRANTED.allows_access
        assert not GateDecision.PASSWORD_REQUIRED.allows_access
        assert not GateDecision.DENIED.allows_access


class TestHashing:

    def test_hash_is_salted(self):
        first = hash_password("same", rounds=ROUNDS)
        second = hash_password("same", rounds=ROUNDS)

        assert first != second
        assert verify_password("same", first)
        assert verify_password("same", second)

    def test_default_work_factor_is_twelve(self):
        assert hash_password("secret").startswith("$2b$12$")

    def test_malformed_hash_never_matches(self):
        assert not verify_password("secret", "not-a-bcrypt-hash")
