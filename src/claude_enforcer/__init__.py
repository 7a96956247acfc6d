"""
Claude Enforcer - Tool-use interception and enforcement hooks for Claude Code.

Components:
- Event Dispatcher: normalizes hook payloads and renders the decision
- Parallel Executor: runs validators concurrently under deadlines, failing open
- Decision Aggregator: reduces hook verdicts into one deterministic Decision
- Auto-Fixer: post-write remediation with backup, verification and rollback
- Enforcement Levels: per-category SILENT/WARNING/PARTIAL/FULL, graduated from metrics
"""

__version__ = "0.1.0"
