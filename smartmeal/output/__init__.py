"""Output formatting for composed meal plans."""

from smartmeal.output.formatters import (
    format_plan_json,
    format_plan_json_string,
    format_plan_markdown,
    format_time_string,
)

__all__ = [
    "format_plan_json",
    "format_plan_json_string",
    "format_plan_markdown",
    "format_time_string",
]
