"""
Suite report generator.

Renders a SuiteReport to JSON and HTML. HTML uses a ``report.html``
template from the template directory when one exists and falls back to
the built-in template otherwise.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound

from ..core.exceptions import FileOperationError
from ..core.logging_config import timed
from .models import ReportFormat, SuiteReport


class ReportGenerator:
    """Writes ``report-<run_id>.json`` and ``report-<run_id>.html`` into one directory."""

    def __init__(
        self,
        output_dir: Path,
        template_dir: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.template_dir = template_dir
        self.logger = logger or logging.getLogger(__name__)

        loader = FileSystemLoader(str(template_dir)) if template_dir else None
        self.jinja_env = Environment(loader=loader, autoescape=True)
        self._renderers: Dict[ReportFormat, Callable[[SuiteReport], str]] = {
            ReportFormat.JSON: self.render_json,
            ReportFormat.HTML: self.render_html,
        }

    def report_path(self, report: SuiteReport, fmt: ReportFormat) -> Path:
        return self.output_dir / f"report-{report.run_id}.{fmt.value}"

    @timed("report_generation")
    def write(
        self,
        report: SuiteReport,
        formats: Iterable[ReportFormat] = (ReportFormat.JSON, ReportFormat.HTML),
    ) -> Dict[ReportFormat, Path]:
        """
        Write ``report`` in each requested format.

        Returns:
            Written file per format

        Raises:
            FileOperationError: a file could not be written
        """
        written = {}
        for fmt in formats:
            path = self.report_path(report, fmt)
            content = self._renderers[fmt](report)
            try:
                path.write_text(content, encoding="utf-8")
            except OSError as e:
                raise FileOperationError(
                    f"Could not write {fmt.value} report: {e}",
                    file_path=str(path),
                    operation="write",
                ) from e
            self.logger.debug(f"Wrote {fmt.value} report {path}")
            written[fmt] = path

        summary = report.summary
        self.logger.info(
            f"Report {report.run_id}: {summary.passed}/{summary.total} passed",
            extra={"metadata": {"files": [str(p) for p in written.values()]}},
        )
        return written

    def render_json(self, report: SuiteReport) -> str:
        return json.dumps(report.model_dump(mode="json"), indent=2)

    def render_html(self, report: SuiteReport) -> str:
        return self._html_template().render(report=report)

    def _html_template(self) -> Template:
        if self.jinja_env.loader is not None:
            try:
                return self.jinja_env.get_template("report.html")
            except TemplateNotFound:
                self.logger.debug(f"No report.html in {self.template_dir}, using built-in template")
        return self.jinja_env.from_string(DEFAULT_HTML_TEMPLATE)


DEFAULT_HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Scenario Report - {{ report.run_id }}</title>
<style>
    body { font-family: system-ui, sans-serif; margin: 24px; color: #222; }
    header { border-bottom: 2px solid #ccc; margin-bottom: 16px; }
    dl.meta { display: grid; grid-template-columns: max-content auto; gap: 4px 12px; }
    dl.meta dt { font-weight: bold; }
    .tiles { display: flex; gap: 12px; margin: 16px 0; }
    .tile { border: 1px solid #ccc; border-radius: 4px; padding: 8px 16px; text-align: center; }
    .tile b { display: block; font-size: 1.6em; }
    .passed { color: #1a7f37; }
    .failed, .error { color: #cf222e; }
    .skipped { color: #9a6700; }
    table.results { border-collapse: collapse; width: 100%; }
    table.results th, table.results td { border: 1px solid #ddd; padding: 6px 8px; text-align: left; vertical-align: top; }
    table.results th { background: #eee; }
    pre { white-space: pre-wrap; margin: 4px 0 0; }
</style>
</head>
<body>
<header>
    <h1>Scenario Report</h1>
    <dl class="meta">
        <dt>Run</dt><dd>{{ report.run_id }}</dd>
        {% if report.environment %}<dt>Environment</dt><dd>{{ report.environment }}</dd>{% endif %}
        {% if report.platform %}<dt>Platform</dt><dd>{{ report.platform }}</dd>{% endif %}
        <dt>Started</dt><dd>{{ report.started_at }}</dd>
        <dt>Finished</dt><dd>{{ report.completed_at }}</dd>
    </dl>
</header>

{% set s = report.summary %}
<section class="tiles">
    <div class="tile"><b>{{ s.total }}</b>scenarios</div>
    <div class="tile passed"><b>{{ s.passed }}</b>passed</div>
    <div class="tile failed"><b>{{ s.failed }}</b>failed</div>
    <div class="tile error"><b>{{ s.errors }}</b>errors</div>
    <div class="tile"><b>{{ s.retried }}</b>retried</div>
    <div class="tile"><b>{{ "%.1f"|format(s.success_rate) }}%</b>pass rate</div>
    <div class="tile"><b>{{ "%.1f"|format(s.duration) }}s</b>elapsed</div>
</section>

<table class="results">
    <thead>
        <tr><th>Scenario</th><th>Key</th><th>Platform</th><th>Result</th><th>Attempts</th><th>Time</th><th>Details</th></tr>
    </thead>
    <tbody>
    {% for row in report.scenarios %}
        <tr>
            <td>{{ row.name }}</td>
            <td>{{ row.test_key or "" }}</td>
            <td>{{ row.platform.value }}</td>
            <td class="{{ row.status.value }}">{{ row.status.value|upper }}</td>
            <td>{{ row.attempts|length }}</td>
            <td>{{ "%.1f"|format(row.duration) }}s</td>
            <td>
                {% if row.error_kind %}<b>{{ row.error_kind }}</b><pre>{{ row.error_message }}</pre>{% endif %}
                {% for attachment in row.attachments %}
                <div>attempt {{ attachment.attempt }}: <a href="{{ attachment.path }}">{{ attachment.path }}</a></div>
                {% endfor %}
            </td>
        </tr>
    {% endfor %}
    </tbody>
</table>
</body>
</html>
"""
