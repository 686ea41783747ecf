"""Output handlers for GitQuest."""

from gitquest.output.console import Console
from gitquest.output.json_writer import build_report, write_json_report

__all__ = [
    "build_report",
    "write_json_report",
    "Console",
]
