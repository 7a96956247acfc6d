"""
Parallel Executor: runs the selected validators concurrently under deadlines.

Validators may block on file or subprocess work, so they run on real threads.
The pool is sized to the hook count, capped at ``max_concurrency``. Workers
are daemon threads: a validator that never returns is disregarded, not
killed, and cannot keep the hook process alive after the decision is out.

Fail-open rules, per hook:
- exceeds its own timeout      -> allow, timed_out=True, late output discarded
- raises or returns junk       -> allow, error=<description>
- still queued or running when the global deadline passes -> allow, timed_out=True

Wall-clock time of run() is bounded by the global deadline and, when every
hook can start immediately, by the largest per-hook timeout.
"""

import itertools
import logging
import queue
import threading
import time
from typing import Mapping, Sequence

from claude_enforcer.errors import ValidatorFault
from claude_enforcer.models import ExecutionResult, HookDefinition, ToolUseEvent, Violation
from claude_enforcer.types import Verdict
from claude_enforcer.validators import Validator

logger = logging.getLogger(__name__)

_worker_ids = itertools.count(1)


def fail_open(
    hook: HookDefinition,
    duration_ms: float,
    *,
    timed_out: bool = False,
    error: str | None = None,
) -> ExecutionResult:
    return ExecutionResult(
        hook_name=hook.name,
        verdict=Verdict.ALLOW,
        message="",
        duration_ms=duration_ms,
        timed_out=timed_out,
        error=error,
        family=hook.family,
        priority=hook.priority,
    )


class _Run:
    """Shared state of one run() call."""

    def __init__(self, event: ToolUseEvent, hooks: Sequence[HookDefinition]) -> None:
        self.event = event
        self.hooks = hooks
        self.jobs: queue.SimpleQueue[int] = queue.SimpleQueue()
        self.done: queue.SimpleQueue[tuple[int, ExecutionResult]] = queue.SimpleQueue()
        self.started: dict[int, float] = {}
        self.lock = threading.Lock()
        self.stop = threading.Event()
        for index in range(len(hooks)):
            self.jobs.put(index)


class ParallelExecutor:
    """Concurrent, deadline-bounded validator runner."""

    def __init__(self, validators: Mapping[str, Validator], max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.validators = validators
        self.max_concurrency = max_concurrency

    def run(
        self,
        event: ToolUseEvent,
        hooks: Sequence[HookDefinition],
        global_deadline_ms: int,
    ) -> list[ExecutionResult]:
        """One result per hook, in the order the hooks were given."""
        if not hooks:
            return []
        start = time.monotonic()
        deadline = start + global_deadline_ms / 1000
        state = _Run(event, hooks)
        results: dict[int, ExecutionResult] = {}

        for _ in range(min(len(hooks), self.max_concurrency)):
            self._spawn_worker(state)

        try:
            while len(results) < len(hooks):
                now = time.monotonic()
                self._expire_overdue(state, results, now)
                if len(results) == len(hooks) or now >= deadline:
                    break
                wait_s = max(0.0, self._next_wakeup(state, results, deadline) - now)
                try:
                    index, result = state.done.get(timeout=wait_s)
                except queue.Empty:
                    continue
                self._accept(state, results, index, result)
        finally:
            state.stop.set()

        # Results that landed while we were deciding to stop.
        while True:
            try:
                index, result = state.done.get_nowait()
            except queue.Empty:
                break
            self._accept(state, results, index, result)

        elapsed_ms = (time.monotonic() - start) * 1000
        for index, hook in enumerate(hooks):
            if index not in results:
                logger.warning(
                    "Hook %s still pending at the %dms global deadline; failing open",
                    hook.name, global_deadline_ms,
                )
                results[index] = fail_open(hook, elapsed_ms, timed_out=True)
        return [results[i] for i in range(len(hooks))]

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _spawn_worker(self, state: _Run) -> None:
        worker = threading.Thread(
            target=self._work,
            args=(state,),
            name=f"hook-worker-{next(_worker_ids)}",
            daemon=True,
        )
        worker.start()

    def _work(self, state: _Run) -> None:
        while not state.stop.is_set():
            try:
                index = state.jobs.get_nowait()
            except queue.Empty:
                return
            with state.lock:
                state.started[index] = time.monotonic()
            result = self.run_one(state.event, state.hooks[index])
            state.done.put((index, result))

    def _expire_overdue(
        self, state: _Run, results: dict[int, ExecutionResult], now: float
    ) -> None:
        with state.lock:
            started = dict(state.started)
        for index, began in started.items():
            if index in results:
                continue
            hook = state.hooks[index]
            if now - began >= hook.timeout_ms / 1000:
                logger.warning("Hook %s exceeded its %dms timeout; failing open", hook.name, hook.timeout_ms)
                results[index] = fail_open(hook, (now - began) * 1000, timed_out=True)
                # The stuck worker is lost to this run; keep the pool at strength.
                if not state.jobs.empty():
                    self._spawn_worker(state)

    def _next_wakeup(
        self, state: _Run, results: dict[int, ExecutionResult], deadline: float
    ) -> float:
        with state.lock:
            started = dict(state.started)
        expiries = [
            began + state.hooks[index].timeout_ms / 1000
            for index, began in started.items()
            if index not in results
        ]
        return min([deadline, *expiries])

    @staticmethod
    def _accept(
        state: _Run, results: dict[int, ExecutionResult], index: int, result: ExecutionResult
    ) -> None:
        if index in results:
            logger.debug("Discarding late result from %s", state.hooks[index].name)
            return
        results[index] = result

    # ------------------------------------------------------------------
    # Per-hook boundary
    # ------------------------------------------------------------------

    def run_one(self, event: ToolUseEvent, hook: HookDefinition) -> ExecutionResult:
        """Run one validator; every fault becomes an allow result."""
        began = time.monotonic()
        try:
            validator = self.validators[hook.name]
            violation = validator.run(event) if validator.match(event) else None
            if violation is not None and not isinstance(violation, Violation):
                raise ValidatorFault(hook.name, f"returned {type(violation).__name__}, not a Violation")
        except Exception as e:
            duration_ms = (time.monotonic() - began) * 1000
            logger.warning("Hook %s faulted; failing open: %s", hook.name, e, exc_info=True)
            return fail_open(hook, duration_ms, error=f"{type(e).__name__}: {e}")

        duration_ms = (time.monotonic() - began) * 1000
        if violation is None:
            return ExecutionResult(
                hook_name=hook.name,
                verdict=Verdict.ALLOW,
                message="",
                duration_ms=duration_ms,
                family=hook.family,
                priority=hook.priority,
            )
        return ExecutionResult(
            hook_name=hook.name,
            verdict=violation.severity,
            message=violation.message,
            duration_ms=duration_ms,
            family=hook.family,
            priority=hook.priority,
            violation=violation,
        )
