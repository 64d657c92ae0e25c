"""Unit tests for typed results."""

import pytest

from strongbox.core.exceptions import (
    AuthenticationError,
    BackupError,
    DeserializationError,
    IntegrityCheckFailedError,
    RecordNotFoundError,
    StorageError,
)
from strongbox.core.results import Outcome, Result


def test_success_result():
    result = Result.success(42)
    assert result.ok
    assert bool(result) is True
    assert result.unwrap() == 42


def test_failure_result_unwrap_raises_matching_error():
    result = Result.failure(Outcome.AUTH_FAILURE, "nope")
    assert not result
    with pytest.raises(AuthenticationError, match="nope"):
        result.unwrap()


def test_failure_needs_non_ok_outcome():
    with pytest.raises(ValueError):
        Result.failure(Outcome.OK)


@pytest.mark.parametrize(
    "error, outcome",
    [
        (AuthenticationError("x"), Outcome.AUTH_FAILURE),
        (DeserializationError("x"), Outcome.DECRYPTION_FAILURE),
        (IntegrityCheckFailedError("x"), Outcome.INTEGRITY_FAILURE),
        (RecordNotFoundError("x"), Outcome.NOT_FOUND),
        (BackupError("x"), Outcome.BACKUP_FAILURE),
    ],
)
def test_capture_maps_expected_failures(error, outcome):
    def boom():
        raise error

    result = Result.capture(boom)
    assert result.outcome is outcome
    assert result.value is None
    assert result.message == "x"


def test_capture_passes_arguments():
    assert Result.capture(lambda a, b=0: a + b, 1, b=2).value == 3


def test_capture_lets_infrastructure_errors_propagate():
    def boom():
        raise StorageError("disk gone")

    with pytest.raises(StorageError):
        Result.capture(boom)
