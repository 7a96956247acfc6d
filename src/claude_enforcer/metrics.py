"""
Append-only metrics log of hook executions.

Write side: ``record()`` never blocks and never raises. Records go into a
bounded in-memory queue that drops the oldest entry when full; one daemon
writer thread drains it and appends JSON lines to the log with a single
O_APPEND write per batch, so overlapping invocations interleave whole lines.

Read side: windowed aggregation queries used only by the enforcement
controller and the ``metrics`` commands. Pruning is a separate maintenance
pass; the hot path never rewrites the log.
"""

import json
import logging
import os
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator

from claude_enforcer.errors import MetricsError
from claude_enforcer.models import ExecutionResult, MetricsRecord, utc_now
from claude_enforcer.types import Verdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowStats:
    """Counts for one category over one time window."""

    runs: int = 0
    violations: int = 0
    errors: int = 0

    @property
    def completed(self) -> int:
        return self.runs - self.errors

    @property
    def violation_rate(self) -> float:
        return self.violations / self.completed if self.completed else 0.0

    @property
    def error_rate(self) -> float:
        return self.errors / self.runs if self.runs else 0.0

    def add(self, record: MetricsRecord) -> "WindowStats":
        faulted = record.timed_out or record.error
        return WindowStats(
            runs=self.runs + 1,
            violations=self.violations + (0 if faulted or record.verdict is Verdict.ALLOW else 1),
            errors=self.errors + (1 if faulted else 0),
        )


class MetricsRecorder:
    """Best-effort asynchronous writer for the metrics log."""

    def __init__(self, log_path: Path, queue_size: int = 256) -> None:
        self.log_path = log_path
        self._queue: deque[MetricsRecord] = deque(maxlen=queue_size)
        self._cond = threading.Condition()
        self._closed = False
        self._writer: threading.Thread | None = None
        self.dropped = 0
        self.written = 0

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def start(self) -> "MetricsRecorder":
        if self._writer is None:
            self._writer = threading.Thread(
                target=self._drain, name="metrics-writer", daemon=True
            )
            self._writer.start()
        return self

    def record(self, result: ExecutionResult, category: str) -> None:
        """Queue one execution outcome. Never blocks, never raises."""
        try:
            entry = MetricsRecord.from_result(result, category)
            with self._cond:
                if self._closed:
                    return
                if len(self._queue) == self._queue.maxlen:
                    self.dropped += 1
                self._queue.append(entry)
                self._cond.notify()
        except Exception:
            logger.warning("Dropping metrics record for %s", result.hook_name, exc_info=True)

    def close(self, timeout_s: float = 1.0) -> None:
        """Flush what the writer can in timeout_s, then stop accepting records."""
        with self._cond:
            self._closed = True
            self._cond.notify()
        if self._writer is not None:
            self._writer.join(timeout_s)
            if self._writer.is_alive():
                logger.warning("Metrics writer still busy after %.1fs; abandoning", timeout_s)
        if self.dropped:
            logger.warning("Dropped %d metrics records (queue full)", self.dropped)

    def __enter__(self) -> "MetricsRecorder":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _drain(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._closed:
                    self._cond.wait()
                batch = list(self._queue)
                self._queue.clear()
                done = self._closed
            if batch:
                try:
                    append_records(self.log_path, batch)
                    self.written += len(batch)
                except MetricsError:
                    logger.warning("Lost %d metrics records", len(batch), exc_info=True)
            if done:
                with self._cond:
                    if not self._queue:
                        return


def append_records(log_path: Path, records: list[MetricsRecord]) -> None:
    """Append records as JSON lines in one write call."""
    payload = "".join(json.dumps(r.to_dict(), separators=(",", ":")) + "\n" for r in records)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            os.write(fd, payload.encode("utf-8"))
        finally:
            os.close(fd)
    except OSError as e:
        raise MetricsError(f"cannot append to {log_path}: {e}") from e


# ----------------------------------------------------------------------
# Read side
# ----------------------------------------------------------------------


def iter_records(log_path: Path) -> Iterator[MetricsRecord]:
    """Yield every parseable record; corrupt lines are skipped."""
    if not log_path.exists():
        return
    with log_path.open("r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield MetricsRecord.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError):
                logger.debug("Skipping corrupt metrics line %d in %s", lineno, log_path)


class MetricsReader:
    """Aggregation queries over the metrics log."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path

    def window_stats(
        self,
        category: str,
        window_days: int,
        count: int = 1,
        now: datetime | None = None,
    ) -> list[WindowStats]:
        """Stats for ``count`` consecutive windows, most recent first."""
        now = now or utc_now()
        width = timedelta(days=window_days)
        oldest = now - width * count
        windows = [WindowStats() for _ in range(count)]
        for record in iter_records(self.log_path):
            if record.category != category or not oldest <= record.timestamp <= now:
                continue
            index = int((now - record.timestamp) / width)
            if 0 <= index < count:
                windows[index] = windows[index].add(record)
        return windows

    def violation_rate(self, category: str, window_days: int, now: datetime | None = None) -> float:
        return self.window_stats(category, window_days, 1, now)[0].violation_rate

    def violation_rates(
        self, category: str, window_days: int, count: int, now: datetime | None = None
    ) -> list[float]:
        return [w.violation_rate for w in self.window_stats(category, window_days, count, now)]

    def error_rate(self, category: str, window_days: int, now: datetime | None = None) -> float:
        return self.window_stats(category, window_days, 1, now)[0].error_rate

    def summary(self, days: int, now: datetime | None = None) -> dict[str, WindowStats]:
        """Per-category stats over the trailing ``days``."""
        now = now or utc_now()
        since = now - timedelta(days=days)
        totals: dict[str, WindowStats] = {}
        for record in iter_records(self.log_path):
            if since <= record.timestamp <= now:
                totals[record.category] = totals.get(record.category, WindowStats()).add(record)
        return dict(sorted(totals.items()))

    def categories(self) -> set[str]:
        return {r.category for r in iter_records(self.log_path)}


def prune(log_path: Path, retention_days: int, now: datetime | None = None) -> tuple[int, int]:
    """Maintenance pass: drop records older than the retention window.

    Returns (kept, removed). The log is rewritten atomically.
    """
    if not log_path.exists():
        return 0, 0
    cutoff = (now or utc_now()) - timedelta(days=retention_days)
    kept: list[MetricsRecord] = []
    removed = 0
    for record in iter_records(log_path):
        if record.timestamp >= cutoff:
            kept.append(record)
        else:
            removed += 1
    tmp_path = log_path.with_suffix(".tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as fh:
            for record in kept:
                fh.write(json.dumps(record.to_dict(), separators=(",", ":")) + "\n")
        tmp_path.replace(log_path)
    except OSError as e:
        raise MetricsError(f"cannot rewrite {log_path}: {e}") from e
    logger.info("Pruned %d metrics records older than %d days", removed, retention_days)
    return len(kept), removed
