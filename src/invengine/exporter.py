"""
Investigation report export

Renders a completed investigation result as JSON, Markdown or HTML.
"""

import logging
from pathlib import Path
from typing import Optional

import jinja2

from .exceptions import UnsupportedExportFormatError
from .models import ExportedReport, InvestigationResult

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

SUPPORTED_FORMATS = ("json", "markdown", "html")


class InvestigationExporter:
    def __init__(self, templates_dir: Optional[str] = None):
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def export(self, result: InvestigationResult, format: str) -> ExportedReport:
        if format == "json":
            return ExportedReport(
                content=result.model_dump_json(indent=2),
                filename=f"investigation-{result.id}.json",
                mime_type="application/json",
            )
        if format == "markdown":
            return ExportedReport(
                content=self.render_markdown(result),
                filename=f"investigation-{result.id}.md",
                mime_type="text/markdown",
            )
        if format == "html":
            return ExportedReport(
                content=self.render_html(result),
                filename=f"investigation-{result.id}.html",
                mime_type="text/html",
            )

        logger.error(f"Unsupported export format: {format}")
        raise UnsupportedExportFormatError(
            f"Unsupported export format: {format}",
            {"format": format, "supported": list(SUPPORTED_FORMATS)},
        )

    def render_markdown(self, result: InvestigationResult) -> str:
        return self.env.get_template("report.md").render(result=result)

    def render_html(self, result: InvestigationResult) -> str:
        # Markdown is shown verbatim inside <pre>, escaped by the html template
        return self.env.get_template("report.html").render(
            markdown=self.render_markdown(result)
        )
