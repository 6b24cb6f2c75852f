"""
Output formatting for update results.

Renders the NAME/OLD/NEW/AGE/INFO table with rich, builds the JSON report
and prints errors with the first line highlighted.
"""

import re
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .checker import ResolutionResult, UpdateReport
from .error_handling import DepBumperError, sanitize_message

UP_TO_DATE_MESSAGE = "All packages are up to date."
UPDATED_MESSAGE = "package.json updated"

_VERSION_PART_RE = re.compile(r"^[0-9a-zA-Z\-.]+$")

# (upper bound in seconds, unit size in seconds, unit name)
_TIME_UNITS = [
    (60, 1, "sec"),
    (3600, 60, "min"),
    (86400, 3600, "hour"),
    (2592000, 86400, "day"),
    (31536000, 2592000, "month"),
    (float("inf"), 31536000, "year"),
]


def reltime(published_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human relative age such as ``3 days`` or ``1 year``; ``now`` within 10s."""
    if published_at is None:
        return ""
    now = now or datetime.now(timezone.utc)
    seconds = (now - published_at).total_seconds()
    if seconds <= 10:
        return "now"

    for upper, unit_size, unit in _TIME_UNITS:
        if seconds < upper:
            value = int(seconds / unit_size + 0.5)
            return f"{value} {unit}{'s' if value > 1 else ''}"
    return ""


def highlight_diff(a: str, b: str, added: bool) -> Text:
    """
    Render ``a`` with everything from its first dot-separated part that
    differs from ``b`` highlighted (green when added, red when removed).
    """
    style = "green" if added else "red"
    a_parts = a.split(".")
    b_parts = b.split(".")
    text = Text()

    for i, part in enumerate(a_parts):
        if i < len(b_parts) and part == b_parts[i]:
            text.append(part + ("." if i < len(a_parts) - 1 else ""))
            continue

        rest = a_parts[i + 1:]
        if _VERSION_PART_RE.match(part):
            text.append(".".join(a_parts[i:]), style=style)
        else:
            for char in part:
                text.append(char, style=style if _VERSION_PART_RE.match(char) else None)
            if rest:
                text.append("." + ".".join(rest), style=style)
        break

    return text


def result_to_dict(result: ResolutionResult, now: Optional[datetime] = None) -> Dict[str, str]:
    entry = {"old": result.old, "new": result.new, "info": result.info}
    if result.published_at is not None:
        entry["age"] = reltime(result.published_at, now)
    return entry


def build_json_payload(
    report: Optional[UpdateReport] = None,
    message: Optional[str] = None,
    error: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the JSON document printed with ``--json``.

    Results are grouped by section then by package name. An error is reported
    in place of the message; results computed before it are kept.
    """
    payload: Dict[str, Any] = {}
    if error is not None:
        payload["error"] = error
        if report is None:
            return payload
    elif message:
        payload["message"] = message

    results: Dict[str, Dict[str, Dict[str, str]]] = {}
    for result in report.results if report else []:
        results.setdefault(result.section, {})[result.name] = result_to_dict(result, now)
    payload["results"] = results
    return payload


def error_message(error: BaseException) -> str:
    """Single-string form of an error for the JSON report."""
    if isinstance(error, DepBumperError):
        return sanitize_message(str(error))
    return "\n".join(format_error(error))


def format_error(error: BaseException) -> List[str]:
    """Error lines: the message first, then the stack for unexpected errors."""
    lines = [sanitize_message(f"{type(error).__name__}: {error}")]
    if not isinstance(error, DepBumperError) and error.__traceback__ is not None:
        for chunk in traceback.format_tb(error.__traceback__):
            lines.extend(line for line in chunk.rstrip("\n").split("\n"))
    return lines


class UpdateReporter:
    """Formats and displays update results."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    def build_table(self, results: List[ResolutionResult], now: Optional[datetime] = None) -> Table:
        table = Table(box=None, pad_edge=False, show_edge=False, header_style="bold")
        for column in ("NAME", "OLD", "NEW", "AGE", "INFO"):
            table.add_column(column, no_wrap=True)

        for result in results:
            old = result.old_display or result.old
            new = result.new_display or result.new
            table.add_row(
                result.name,
                highlight_diff(old, new, False),
                highlight_diff(new, old, True),
                reltime(result.published_at, now),
                result.info,
            )
        return table

    def print_results(self, report: UpdateReport) -> None:
        if report.results:
            self.console.print(self.build_table(report.results))
        else:
            self.console.print(UP_TO_DATE_MESSAGE)

    def print_updated(self) -> None:
        self.console.print(
            Panel(
                Text(UPDATED_MESSAGE, style="green"),
                box=box.ROUNDED,
                border_style="green",
                expand=False,
                padding=(0, 2),
            )
        )

    def print_error(self, error: BaseException) -> None:
        for index, line in enumerate(format_error(error)):
            self.console.print(Text(line, style="red" if index == 0 else "bright_black"))
