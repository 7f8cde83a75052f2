"""Tests for batching, progress and cancellation primitives."""

import pytest

from data_connector.core.batching import (
    BatchProgress,
    CancellationToken,
    check_cancelled,
    iter_batches,
    report_progress,
)
from data_connector.core.exceptions import OperationCancelledError


class TestIterBatches:
    """Test suite for iter_batches."""

    def test_iter_batches_yields_start_index_and_slice(self):
        # Act
        batches = list(iter_batches([1, 2, 3, 4, 5], 2))

        # Assert
        assert batches == [(0, [1, 2]), (2, [3, 4]), (4, [5])]

    def test_iter_batches_empty_input_yields_nothing(self):
        # Act & Assert
        assert list(iter_batches([], 10)) == []

    def test_iter_batches_non_positive_size_raises_valueerror(self):
        # Act & Assert
        with pytest.raises(ValueError, match="batch_size must be positive"):
            list(iter_batches([1], 0))


class TestProgressAndCancellation:
    """Test suite for BatchProgress, report_progress and CancellationToken."""

    def test_batch_progress_fraction_and_done(self):
        # Arrange
        halfway = BatchProgress(stage="validate", processed=5, total=10)
        empty = BatchProgress(stage="validate", processed=0, total=0)

        # Act & Assert
        assert halfway.fraction == 0.5
        assert halfway.done is False
        assert empty.fraction == 1.0
        assert empty.done is True

    def test_report_progress_passes_snapshot_to_callback(self):
        # Arrange
        events = []

        # Act
        report_progress(events.append, "detect", 1, 3, ["partial"])
        report_progress(None, "detect", 2, 3)

        # Assert
        assert events == [BatchProgress(stage="detect", processed=1, total=3, partial=["partial"])]

    def test_check_cancelled_unset_token_does_nothing(self):
        # Act & Assert
        check_cancelled(CancellationToken(), "fingerprint", 0, 4)
        check_cancelled(None, "fingerprint", 0, 4)

    def test_check_cancelled_set_token_raises_with_position(self):
        # Arrange
        token = CancellationToken()
        token.cancel()

        # Act
        with pytest.raises(OperationCancelledError) as exc_info:
            check_cancelled(token, "join_lookup", 3, 8)

        # Assert
        assert token.is_cancelled
        assert (exc_info.value.stage, exc_info.value.processed, exc_info.value.total) == ("join_lookup", 3, 8)
        assert "cancelled after 3/8" in str(exc_info.value)
