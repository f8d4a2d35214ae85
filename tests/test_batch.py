import threading

import pytest

from cataleon.batch import BatchResult, run_batch
from cataleon.errors import BatchError


class TestRunBatch:
    def test_all_succeed(self):
        seen = []
        lock = threading.Lock()

        def record(item):
            with lock:
                seen.append(item)

        result = run_batch([1, 2, 3], record, key=lambda item: item)

        assert sorted(seen) == [1, 2, 3]
        assert sorted(result.succeeded) == [1, 2, 3]
        assert result.ok
        assert result.summary() == "3 product(s) updated"

    def test_failure_does_not_cancel_siblings(self):
        def operation(item):
            if item == 2:
                raise LookupError("Product 2 not found")

        result = run_batch([1, 2, 3], operation, key=lambda item: item, max_workers=1)

        assert sorted(result.succeeded) == [1, 3]
        assert result.failed == {2: "Product 2 not found"}
        assert not result.ok
        assert result.summary() == "2 of 3 product(s) updated, 1 failed"

    def test_empty_batch(self):
        result = run_batch([], lambda item: None, key=lambda item: item)
        assert result.total == 0
        assert result.ok

    def test_custom_key(self):
        result = run_batch([("a", 1)], lambda item: None, key=lambda item: item[0])
        assert result.succeeded == ["a"]


class TestBatchResult:
    def test_raise_for_failures(self):
        result = BatchResult(succeeded=[1], failed={2: "boom"})
        with pytest.raises(BatchError) as excinfo:
            result.raise_for_failures()
        assert excinfo.value.result is result
        assert excinfo.value.code == "BATCH_PARTIAL_FAILURE"
        assert str(excinfo.value) == "1 of 2 update(s) failed"

    def test_no_raise_when_ok(self):
        BatchResult(succeeded=[1]).raise_for_failures()
