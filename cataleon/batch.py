"""
Fan-out of independent per-product writes.

Each item is handed to a worker thread and runs on its own; one failure never
cancels or undoes its siblings. The caller gets a BatchResult listing which
items went through and which did not.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Iterable, TypeVar

from cataleon.errors import BatchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_WORKERS = 8


@dataclass
class BatchResult:
    succeeded: list[Hashable] = field(default_factory=list)
    failed: dict[Hashable, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        if self.ok:
            return f"{len(self.succeeded)} product(s) updated"
        return f"{len(self.succeeded)} of {self.total} product(s) updated, {len(self.failed)} failed"

    def raise_for_failures(self) -> None:
        if self.failed:
            raise BatchError(self)


def run_batch(
    items: Iterable[T],
    operation: Callable[[T], Any],
    key: Callable[[T], Hashable],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> BatchResult:
    work = list(items)
    result = BatchResult()
    if not work:
        return result

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(work)))) as executor:
        futures = {executor.submit(operation, item): key(item) for item in work}
        for future in as_completed(futures):
            item_key = futures[future]
            try:
                future.result()
            except Exception as exc:
                logger.warning("Batch item %s failed: %s", item_key, exc)
                result.failed[item_key] = str(exc)
            else:
                result.succeeded.append(item_key)

    logger.info("Batch finished: %s", result.summary())
    return result
