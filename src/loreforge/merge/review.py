"""Human-readable rendering of merge conflicts."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loreforge.merge.engine import MergeResult

_MAX_VALUE_CHARS = 80


def _render(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > _MAX_VALUE_CHARS:
        return text[: _MAX_VALUE_CHARS - 3] + "..."
    return text


def format_conflicts_for_review(result: MergeResult) -> str:
    """Render conflicts and warnings as a markdown review section.

    Returns an empty string when there is nothing to review.
    """
    if not result.conflicts and not result.warnings:
        return ""

    lines = ["## Merge review", ""]
    if result.conflicts:
        lines.append(f"{len(result.conflicts)} field(s) resolved automatically:")
        lines.append("")
        for conflict in result.conflicts:
            lines.append(f"- **{conflict.field}** ({conflict.strategy}, rule {conflict.rule})")
            for contributor, value in conflict.contributors:
                lines.append(f"  - {contributor}: {_render(value)}")
            lines.append(f"  - resolved: {_render(conflict.resolved_value)}")
    if result.warnings:
        if result.conflicts:
            lines.append("")
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in result.warnings)
    return "\n".join(lines)
