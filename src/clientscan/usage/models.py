import ast
from dataclasses import dataclass, field
from typing import Any, TypedDict

from clientscan.source.loader import UnitFailure

# --- Pipeline values ---


@dataclass(slots=True, frozen=True)
class MethodSpec:
    """Where the resource argument of a tracked client method sits."""

    name: str
    arg_index: int  # 1-based position among the positional arguments
    keyword: str | None = None  # keyword the same parameter may be passed as


@dataclass(slots=True)
class CallSite:
    """A call whose callee is a qualified member access (``recv.method(...)``)."""

    method: str
    path: str
    line: int
    col: int
    callee: ast.Attribute
    args: list[ast.expr]
    keywords: list[ast.keyword]

    @property
    def position(self) -> str:
        return f"{self.path}:{self.line}:{self.col}"


@dataclass(slots=True, frozen=True)
class ResourceIdentity:
    """
    ``identity`` is the resource type the call operates on (the aggregation key);
    ``argument`` is how the call passed it, e.g. ``type[...]`` for a class object.
    """

    identity: str
    argument: str
    resolved: bool = True  # False when the argument text stands in for its type


@dataclass(slots=True, frozen=True)
class MatchedCall:
    path: str
    line: int
    col: int
    method: str
    identity: str  # the argument as passed, class-object marker included
    resolved: bool


@dataclass
class AnalysisResult:
    """Aggregate of one analysis run."""

    total_matched_calls: int = 0
    usages: dict[str, set[str]] = field(default_factory=dict)
    calls: list[MatchedCall] = field(default_factory=list)
    failures: list[UnitFailure] = field(default_factory=list)
    calls_scanned: int = 0
    files_scanned: int = 0
    files_excluded: int = 0
    files_analyzed: int = 0

    @property
    def calls_unresolved(self) -> int:
        return sum(1 for c in self.calls if not c.resolved)


# --- Report records ---


class ResourceRecord(TypedDict, total=False):
    name: str
    identity: str
    methods: list[str]


class CallRecord(TypedDict):
    path: str
    line: int
    col: int
    method: str
    identity: str
    resolved: bool


class FailureRecord(TypedDict):
    path: str
    reason: str


class UsageStats(TypedDict):
    files_scanned: int
    files_excluded: int
    files_parsed_ok: int
    files_parse_errors: int
    calls_scanned: int
    calls_matched: int
    calls_unresolved: int
    resources: int


class Metadata(TypedDict):
    schema_version: str
    generated_at: str
    root: str
    target_namespace: str
    config_effective: dict[str, Any]


class UsageReport(TypedDict, total=False):
    meta: Metadata
    stats: UsageStats
    resources: list[ResourceRecord]
    calls: list[CallRecord]
    failures: list[FailureRecord]
