"""
Tests for transaction helpers.
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from order_assistant.errors import ItemNotFound, TransientStoreError
from order_assistant.services.transaction import atomic, lock_for_update, run_with_retry


class TestAtomic:
    def test_commits_on_success(self):
        db = MagicMock()

        with atomic(db):
            pass

        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_store_error_becomes_transient(self):
        db = MagicMock()
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("database is locked"))

        with pytest.raises(TransientStoreError) as exc_info:
            with atomic(db):
                pass

        assert exc_info.value.retryable is True
        db.rollback.assert_called_once()

    def test_integrity_error_passes_through(self):
        db = MagicMock()
        db.commit.side_effect = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(IntegrityError):
            with atomic(db):
                pass

        db.rollback.assert_called_once()

    def test_domain_error_rolls_back(self):
        db = MagicMock()

        with pytest.raises(ItemNotFound):
            with atomic(db):
                raise ItemNotFound("pizza")

        db.rollback.assert_called_once()
        db.commit.assert_not_called()


def test_lock_for_update():
    query = MagicMock()

    assert lock_for_update(query) is query.with_for_update.return_value


class TestRunWithRetry:
    def test_retries_transient_failures(self):
        sleeps = []
        calls = {"count": 0}

        def flaky():
            calls["count"] += 1
            if calls["count"] < 3:
                raise TransientStoreError()
            return "ok"

        assert run_with_retry(flaky, attempts=3, backoff_base=0.1, sleep=sleeps.append) == "ok"
        assert sleeps == [0.1, 0.2]

    def test_gives_up(self):
        sleeps = []

        def broken():
            raise TransientStoreError()

        with pytest.raises(TransientStoreError):
            run_with_retry(broken, attempts=2, sleep=sleeps.append)

        assert len(sleeps) == 1

    def test_other_errors_not_retried(self):
        sleeps = []
        calls = {"count": 0}

        def refused():
            calls["count"] += 1
            raise ItemNotFound("pizza")

        with pytest.raises(ItemNotFound):
            run_with_retry(refused, attempts=3, sleep=sleeps.append)

        assert calls["count"] == 1
        assert sleeps == []
