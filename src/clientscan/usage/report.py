import sys
from typing import TextIO

from clientscan.shared.console import ConsoleManager

from .models import AnalysisResult
from .naming import normalize_resource_name


def resource_rows(result: AnalysisResult) -> list[tuple[str, str, list[str]]]:
    """(normalized name, identity, sorted methods) per resource, in display order."""
    rows = [
        (normalize_resource_name(identity), identity, sorted(methods))
        for identity, methods in result.usages.items()
    ]
    return sorted(rows, key=lambda row: (row[0], row[1]))


class TextReporter:
    """Plain text: one ``name: method, method`` line per resource."""

    def __init__(
        self,
        *,
        show_identity: bool = False,
        list_calls: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self._show_identity = show_identity
        self._list_calls = list_calls
        self._stream = stream

    def lines(self, result: AnalysisResult) -> list[str]:
        out: list[str] = []
        for name, identity, methods in resource_rows(result):
            line = f"{name}: {', '.join(methods)}"
            if self._show_identity:
                line += f"  [{identity}]"
            out.append(line)

        if self._list_calls and result.calls:
            out.append("")
            for call in result.calls:
                marker = "" if call.resolved else " (unresolved)"
                out.append(
                    f"{call.path}:{call.line}:{call.col}  {call.method}  {call.identity}{marker}"
                )

        out.append(f"total matched calls: {result.total_matched_calls}")
        return out

    def render(self, result: AnalysisResult) -> None:
        stream = self._stream or sys.stdout
        for line in self.lines(result):
            print(line, file=stream)


class LogReporter:
    """Structured ``key=value`` log entries, one per resource."""

    def __init__(self, logger: ConsoleManager, *, show_identity: bool = False) -> None:
        self._logger = logger
        self._show_identity = show_identity

    def entries(self, result: AnalysisResult) -> list[str]:
        out: list[str] = []
        for name, identity, methods in resource_rows(result):
            entry = f"msg=resource name={name} methods={','.join(methods)}"
            if self._show_identity:
                entry += f' identity="{identity}"'
            out.append(entry)
        out.append(
            f"msg=summary total_matched_calls={result.total_matched_calls} "
            f"resources={len(result.usages)}"
        )
        return out

    def render(self, result: AnalysisResult) -> None:
        for entry in self.entries(result):
            self._logger.info(entry)
