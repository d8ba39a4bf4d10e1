import pytest

from burn_register.models import AttemptStatus, RegistrationAttempt


def test_attempt_settles_once():
    attempt = RegistrationAttempt(block_sequence=5)
    assert not attempt.settled
    attempt.settle(AttemptStatus.FINALIZED, extrinsic_digest="0x01", latency=1.5)
    assert attempt.settled
    assert attempt.extrinsic_digest == "0x01"
    with pytest.raises(RuntimeError):
        attempt.settle(AttemptStatus.FATAL)


def test_attempt_cannot_go_back_to_pending():
    with pytest.raises(ValueError):
        RegistrationAttempt(block_sequence=5).settle(AttemptStatus.PENDING)
