"""Rendering of sync results for humans and machines."""
import json
from typing import Any, Dict

from ..sync.domains.models import SyncReport, SyncStatus

_LABELS = {
    SyncStatus.CREATED: "created",
    SyncStatus.UPDATED: "updated",
    SyncStatus.UNCHANGED: "unchanged",
    SyncStatus.SKIPPED: "skipped",
    SyncStatus.FAILED: "FAILED",
}

_PAST_TENSE = {"pull": "pulled", "push": "pushed"}


def report_to_dict(report: SyncReport) -> Dict[str, Any]:
    return {
        "success": not report.failed,
        "operation": report.operation,
        "dry_run": report.dry_run,
        "summary": report.counts(),
        "outcomes": [
            {
                "key": outcome.entry_key,
                "secret": outcome.secret_name,
                "path": str(outcome.path),
                "status": outcome.status.value,
                "reason": outcome.reason,
            }
            for outcome in report.outcomes
        ],
    }


def render_human(report: SyncReport) -> str:
    """
    One line per entry followed by a summary.

    Failure and skip reasons are shown verbatim.
    """
    lines = []
    width = max((len(outcome.entry_key) for outcome in report.outcomes), default=0)
    arrow = "<-" if report.operation == "pull" else "->"

    for outcome in report.outcomes:
        line = f"  {_LABELS[outcome.status]:<9}  {outcome.entry_key:<{width}}  {outcome.path} {arrow} {outcome.secret_name}"
        if outcome.reason:
            line += f": {outcome.reason}"
        lines.append(line)

    counts = report.counts()
    verb = _PAST_TENSE.get(report.operation, report.operation)
    changed = counts["created"] + counts["updated"]
    prefix = "dry run: " if report.dry_run else ""
    summary = (
        f"{prefix}{verb} {len(report.outcomes)} secret file(s): "
        f"{changed} changed ({counts['created']} created, {counts['updated']} updated), "
        f"{counts['unchanged']} unchanged, {counts['skipped']} skipped, {counts['failed']} failed"
    )
    lines.append(summary)
    return "\n".join(lines)


def render_json(report: SyncReport) -> str:
    return json.dumps(report_to_dict(report), indent=2)


def render_error_json(message: str) -> str:
    return json.dumps({"success": False, "error": message})
