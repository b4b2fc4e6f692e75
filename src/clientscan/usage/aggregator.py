from .models import AnalysisResult, MatchedCall


class Aggregator:
    """
    Accumulates resource identity -> methods used, plus the matched-call count.

    Not thread-safe: one instance per unit or per run, combined with merge().
    """

    def __init__(self) -> None:
        self._usages: dict[str, set[str]] = {}
        self._calls: list[MatchedCall] = []
        self.total_matched_calls = 0

    def record(self, identity: str, method: str, call: MatchedCall | None = None) -> None:
        self._usages.setdefault(identity, set()).add(method)
        self.total_matched_calls += 1
        if call is not None:
            self._calls.append(call)

    def merge(self, other: "Aggregator") -> None:
        for identity, methods in other._usages.items():
            self._usages.setdefault(identity, set()).update(methods)
        self._calls.extend(other._calls)
        self.total_matched_calls += other.total_matched_calls

    def result(self) -> AnalysisResult:
        """Snapshot of the aggregate; later records do not affect it."""
        return AnalysisResult(
            total_matched_calls=self.total_matched_calls,
            usages={k: set(v) for k, v in self._usages.items()},
            calls=sorted(self._calls, key=lambda c: (c.path, c.line, c.col)),
        )
