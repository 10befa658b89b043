"""
Report writers.

Renders run outcomes as a console list, a browsable HTML bundle, a JSON
document and a JUnit XML file.
"""

import hashlib
import json
import shutil
from pathlib import Path
from typing import Dict, List, Optional, TextIO

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..core.config import ReporterConfig, ReporterKind
from ..core.exceptions import ReportWriteError
from ..core.logging_config import get_logger
from ..execution.models import ArtifactRef, RunInstance, RunResult, RunStatus
from .models import RunReport, RunSummary

TEMPLATE_DIR = Path(__file__).parent / "templates"

_SYMBOLS = {
    RunStatus.PASSED: "✓",
    RunStatus.FAILED: "✘",
    RunStatus.RETRYING: "✘",
}


def _format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)}m {rest:.1f}s"


def _jinja_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )
    env.filters["duration"] = _format_duration
    return env


class ListWriter:
    """Line-per-attempt console output followed by a sorted summary."""

    def __init__(self, stream: TextIO):
        self.stream = stream
        self._counter = 0

    def _print(self, line: str = "") -> None:
        self.stream.write(line + "\n")
        self.stream.flush()

    def write_begin(self, total: int, workers: int) -> None:
        noun = "test" if total == 1 else "tests"
        worker_noun = "worker" if workers == 1 else "workers"
        self._print(f"\nRunning {total} {noun} using {workers} {worker_noun}\n")

    def write_result(self, result: RunResult) -> None:
        for instance in result.attempts:
            self._counter += 1
            symbol = _SYMBOLS.get(instance.status, "-")
            retry = f" (retry #{instance.retry})" if instance.retry else ""
            self._print(
                f"  {symbol}  {self._counter} [{instance.target}] › {instance.unit}"
                f"{retry} ({_format_duration(instance.duration)})"
            )

    def _write_attempt_details(self, instance: RunInstance, indent: str) -> None:
        if instance.error is not None:
            self._print(f"{indent}{instance.error.error_type}: {instance.error.message}")
            if instance.error.step:
                self._print(f"{indent}at step: {instance.error.step}")
        for artifact in instance.artifacts:
            self._print(f"{indent}attachment: {artifact.kind.value} {artifact.path}")

    def write_summary(self, results: List[RunResult], summary: RunSummary) -> None:
        failures = [r for r in results if r.status == RunStatus.FAILED]
        flaky = [r for r in results if r.flaky]

        if failures or flaky:
            self._print()
        for number, result in enumerate(failures + flaky, start=1):
            self._print(f"  {number}) [{result.target}] › {result.unit}\n")
            for instance in result.attempts:
                if instance.status == RunStatus.PASSED:
                    continue
                if instance.retry:
                    self._print(f"    Retry #{instance.retry}")
                self._write_attempt_details(instance, "    ")
                self._print()

        self._print()
        if summary.failed:
            self._print(f"  {summary.failed} failed")
            for result in failures:
                self._print(f"    [{result.target}] › {result.unit}")
        if summary.flaky:
            self._print(f"  {summary.flaky} flaky")
            for result in flaky:
                self._print(f"    [{result.target}] › {result.unit}")
        if summary.passed:
            self._print(f"  {summary.passed} passed ({_format_duration(summary.duration)})")


class FileReportWriter:
    """Base class for reporters that write to the filesystem."""

    kind: ReporterKind

    def __init__(self, config: ReporterConfig, overwrite: bool = False):
        self.config = config
        self.output_path: Path = Path(config.output_path)
        self.overwrite = overwrite or config.overwrite
        self.logger = get_logger(__name__, reporter=config.kind.value)

    def write(self, report: RunReport) -> Path:
        raise NotImplementedError

    def _write_text(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ReportWriteError(
                f"Failed to write {self.kind.value} report: {e}",
                file_path=str(path),
                reporter=self.kind.value,
            ) from e


class HtmlReportWriter(FileReportWriter):
    """Writes ``index.html`` plus a ``data/`` folder of copied artifacts."""

    kind = ReporterKind.HTML

    def _prepare_folder(self) -> None:
        folder = self.output_path
        if folder.exists() and not folder.is_dir():
            raise ReportWriteError(
                f"HTML report location is not a directory: {folder}",
                file_path=str(folder),
                reporter=self.kind.value,
            )
        if folder.exists() and any(folder.iterdir()):
            if not self.overwrite:
                raise ReportWriteError(
                    f"HTML report folder {folder} already exists and is not empty; "
                    "pass --overwrite-report or set overwrite: true",
                    file_path=str(folder),
                    reporter=self.kind.value,
                )
            shutil.rmtree(folder)
        folder.mkdir(parents=True, exist_ok=True)

    def _copy_artifacts(self, results: List[RunResult]) -> Dict[str, str]:
        links: Dict[str, str] = {}
        data_dir = self.output_path / "data"
        for result in results:
            for artifact in result.artifacts:
                if not artifact.exists:
                    self.logger.warning(f"Artifact missing, not linked: {artifact.path}")
                    continue
                digest = hashlib.sha1(str(artifact.path).encode("utf-8")).hexdigest()[:16]
                relative = Path("data") / digest / artifact.file_name
                destination = data_dir / digest / artifact.file_name
                try:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(artifact.path, destination)
                except OSError as e:
                    raise ReportWriteError(
                        f"Failed to copy artifact {artifact.path}: {e}",
                        file_path=str(destination),
                        reporter=self.kind.value,
                    ) from e
                links[str(artifact.path)] = relative.as_posix()
        return links

    def write(self, report: RunReport) -> Path:
        self._prepare_folder()
        links = self._copy_artifacts(report.results)

        template = _jinja_env().get_template("report.html")
        html = template.render(report=report, links=links, RunStatus=RunStatus)
        index = self.output_path / "index.html"
        self._write_text(index, html)
        self.logger.info(f"Saved html report to: {self.output_path}")
        return self.output_path


class JsonReportWriter(FileReportWriter):
    kind = ReporterKind.JSON

    def write(self, report: RunReport) -> Path:
        payload = report.model_dump(mode="json")
        for result, data in zip(report.results, payload["results"]):
            data["status"] = result.status.value
            data["flaky"] = result.flaky
        self._write_text(self.output_path, json.dumps(payload, indent=2, ensure_ascii=False))
        self.logger.info(f"Saved json report to: {self.output_path}")
        return self.output_path


class JUnitReportWriter(FileReportWriter):
    kind = ReporterKind.JUNIT

    def write(self, report: RunReport) -> Path:
        template = _jinja_env().get_template("junit.xml")
        self._write_text(self.output_path, template.render(report=report, RunStatus=RunStatus))
        self.logger.info(f"Saved junit report to: {self.output_path}")
        return self.output_path


WRITERS = {
    ReporterKind.HTML: HtmlReportWriter,
    ReporterKind.JSON: JsonReportWriter,
    ReporterKind.JUNIT: JUnitReportWriter,
}


def create_file_writer(
    config: ReporterConfig, overwrite: bool = False
) -> Optional[FileReportWriter]:
    """Create the file writer for a reporter, or None for console reporters."""
    writer_class = WRITERS.get(config.kind)
    if writer_class is None:
        return None
    return writer_class(config, overwrite=overwrite)
