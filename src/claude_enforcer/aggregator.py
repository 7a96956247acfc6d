"""
Decision Aggregator: reduces per-hook results to one Decision.

Pure and order-independent: results are sorted before anything else looks
at them, so the same set of results always yields the same Decision no
matter which hook finished first.
"""

from typing import Iterable

from claude_enforcer.config import MessageConfig
from claude_enforcer.models import Decision, ExecutionResult
from claude_enforcer.types import Verdict

REMEDIATION_HINT = (
    "Change the file so the rule passes and retry; "
    "run `claude-enforcer status` to see the rule and its enforcement level."
)
ELLIPSIS = "…"


def _result_key(result: ExecutionResult) -> tuple:
    return (
        result.priority.rank,
        result.family,
        result.hook_name,
        -result.verdict.rank,
        result.message,
        result.timed_out,
        result.error or "",
    )


def reduce_verdict(results: Iterable[ExecutionResult]) -> Verdict:
    """block if any block, else warn if any warn, else allow. Timeouts don't count."""
    verdict = Verdict.ALLOW
    for result in results:
        if result.timed_out:
            continue
        if result.verdict.rank > verdict.rank:
            verdict = result.verdict
    return verdict


def format_entry(result: ExecutionResult) -> str:
    text = f"[{result.family}] {result.message}" if result.family else result.message
    hint = result.violation.suggested_fix if result.violation else None
    if hint is None and result.verdict is Verdict.BLOCK:
        hint = REMEDIATION_HINT
    if hint:
        text += f"\n  -> {hint}"
    return text


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: max(limit - 1, 0)] + ELLIPSIS


def group_by_family(flagged: list[ExecutionResult]) -> list[ExecutionResult]:
    """Families in order of their most urgent hook; hooks keep priority order inside."""
    families: dict[str, list[ExecutionResult]] = {}
    for result in flagged:
        families.setdefault(result.family, []).append(result)
    ordered = sorted(
        families.items(),
        key=lambda item: (min(r.priority.rank for r in item[1]), item[0]),
    )
    return [result for _, group in ordered for result in group]


def render_messages(flagged: list[ExecutionResult], limits: MessageConfig) -> tuple[str, ...]:
    entries: list[str] = []
    seen: set[str] = set()
    for result in group_by_family(flagged):
        entry = _truncate(format_entry(result), limits.max_message_length)
        if entry not in seen:
            seen.add(entry)
            entries.append(entry)

    kept: list[str] = []
    total = 0
    for entry in entries:
        if len(kept) >= limits.max_messages or total + len(entry) > limits.max_total_length:
            break
        kept.append(entry)
        total += len(entry)
    hidden = len(entries) - len(kept)
    if hidden:
        kept.append(f"+{hidden} more")
    return tuple(kept)


def aggregate(
    results: Iterable[ExecutionResult], limits: MessageConfig = MessageConfig()
) -> Decision:
    """Reduce results (treated as a set) into the event's Decision."""
    ordered = sorted(results, key=_result_key)
    verdict = reduce_verdict(ordered)
    flagged = [r for r in ordered if not r.timed_out and r.verdict is not Verdict.ALLOW]
    return Decision(
        verdict=verdict,
        messages=render_messages(flagged, limits),
        contributing_hooks=tuple(sorted({r.hook_name for r in flagged})),
        faults=tuple(sorted({r.hook_name for r in ordered if r.faulted})),
    )
