from __future__ import annotations

import datetime
import sys
from pathlib import Path
from typing import Any

import yaml

from clientscan.shared.console import ConsoleManager
from clientscan.source.loader import CompilationUnit, SourceLoader, UnitFailure, Workspace

from . import models
from .aggregator import Aggregator
from .config import MethodSpecTable
from .pipeline import CallSiteScanner, MethodMatcher, ResourceTypeExtractor
from .report import resource_rows


class UsageService:
    """
    Core service: loads a workspace and aggregates which resources the
    tracked client methods are called with.
    """

    def __init__(
        self,
        *,
        app_config: dict[str, Any],
        root_path: Path,
        logger: ConsoleManager,
    ) -> None:
        self._app_config = app_config
        self._root = root_path
        self._logger = logger

        # Dependencies
        self._namespace: str = app_config["target_namespace"]
        self._table = MethodSpecTable.from_config(app_config["methods"])
        self._scanner = CallSiteScanner()
        self._matcher = MethodMatcher(
            self._table, self._namespace, app_config.get("namespace_aliases")
        )
        self._extractor = ResourceTypeExtractor()

    def run_analysis(self) -> models.AnalysisResult:
        """
        Executes the full scan. Raises WorkspaceLoadError if the root cannot be loaded.
        """
        self._logger.info(f"Starting client usage scan of '{self._root}'")
        self._logger.debug(
            f"Target namespace '{self._namespace}', methods: {', '.join(self._table.names())}"
        )
        loader = SourceLoader(root=self._root, logger=self._logger, app_config=self._app_config)
        workspace = loader.load()
        return self.analyze(workspace)

    def analyze(self, workspace: Workspace) -> models.AnalysisResult:
        run = Aggregator()
        failures = list(workspace.failures)
        candidates = 0
        analyzed = 0

        for unit in workspace.units:
            try:
                local, scanned = self.analyze_unit(unit)
            except Exception as e:
                failures.append(UnitFailure(path=unit.relpath, reason=f"Analysis Error: {e}"))
                self._logger.warning(f"Failed to analyze {unit.relpath}: {e}")
                continue
            run.merge(local)
            candidates += scanned
            analyzed += 1

        result = run.result()
        result.failures = sorted(failures, key=lambda f: f.path)
        result.calls_scanned = candidates
        result.files_scanned = workspace.files_scanned
        result.files_excluded = workspace.files_excluded
        result.files_analyzed = analyzed

        self._logger.info(
            f"Matched {result.total_matched_calls} call(s) on "
            f"{len(result.usages)} resource type(s) in {analyzed} file(s)."
        )
        return result

    def analyze_unit(self, unit: CompilationUnit) -> tuple[Aggregator, int]:
        """Scans one unit into a fresh aggregator. Returns it with the candidate count."""
        local = Aggregator()
        candidates = 0
        for site in self._scanner.scan(unit):
            candidates += 1
            spec = self._matcher.match(site, unit)
            if spec is None:
                continue

            resource = self._extractor.extract(site, spec, unit)
            if resource.resolved:
                self._logger.debug(
                    f"Found {site.method} at {site.position}: {resource.argument}"
                )
            else:
                self._logger.debug(
                    f"Found {site.method} at {site.position}: "
                    f"type of '{resource.identity}' unresolved, using argument text"
                )

            local.record(
                resource.identity,
                site.method,
                models.MatchedCall(
                    path=site.path,
                    line=site.line,
                    col=site.col,
                    method=site.method,
                    identity=resource.argument,
                    resolved=resource.resolved,
                ),
            )
        return local, candidates

    def build_report(self, result: models.AnalysisResult) -> models.UsageReport:
        start = datetime.datetime.now(datetime.timezone.utc)
        clean_conf = {k: v for k, v in self._app_config.items() if not k.startswith("_")}

        stats = models.UsageStats(
            files_scanned=result.files_scanned,
            files_excluded=result.files_excluded,
            files_parsed_ok=result.files_analyzed,
            files_parse_errors=len(result.failures),
            calls_scanned=result.calls_scanned,
            calls_matched=result.total_matched_calls,
            calls_unresolved=result.calls_unresolved,
            resources=len(result.usages),
        )
        meta = models.Metadata(
            schema_version="1.0",
            generated_at=start.isoformat().replace("+00:00", "Z"),
            root=str(self._root),
            target_namespace=self._namespace,
            config_effective=clean_conf,
        )
        report = models.UsageReport(
            meta=meta,
            stats=stats,
            resources=[
                models.ResourceRecord(name=name, identity=identity, methods=methods)
                for name, identity, methods in resource_rows(result)
            ],
        )
        if self._app_config.get("list_calls"):
            report["calls"] = [
                models.CallRecord(
                    path=c.path,
                    line=c.line,
                    col=c.col,
                    method=c.method,
                    identity=c.identity,
                    resolved=c.resolved,
                )
                for c in result.calls
            ]
        if result.failures:
            report["failures"] = [
                models.FailureRecord(path=f.path, reason=f.reason) for f in result.failures
            ]
        return report

    def write_yaml(
        self, report: models.UsageReport, path: str | None, to_stdout: bool = False
    ) -> None:
        """
        Writes the report to a YAML file, or to stdout.
        """
        data = dict(report)
        if to_stdout or not path:
            self._yaml_dump_no_alias(data, sys.stdout)
            return

        out_p = Path(path)
        out_p.parent.mkdir(parents=True, exist_ok=True)

        with open(out_p, "w", encoding="utf-8") as f:
            self._yaml_dump_no_alias(data, f)

        self._logger.info(f"Report written to: {out_p.resolve()}")

    # --- Private Helpers ---

    def _yaml_dump_no_alias(self, data: Any, stream: Any) -> None:
        class MultilineDumper(yaml.SafeDumper):
            def represent_scalar(self, tag, value, style=None):
                if isinstance(value, str) and "\n" in value:
                    style = "|"
                return super().represent_scalar(tag, value, style)

        class NoAliasDumper(MultilineDumper):
            def ignore_aliases(self, data):
                return True

        yaml.dump(
            data, stream, Dumper=NoAliasDumper, sort_keys=False, allow_unicode=True
        )
