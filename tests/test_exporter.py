"""
Test suite for investigation report export
"""

import json

import pytest

from conftest import make_plan, rows_result
from invengine.exceptions import UnsupportedExportFormatError
from invengine.exporter import InvestigationExporter
from invengine.models import (
    InvestigationContext,
    InvestigationEvidence,
    InvestigationProblem,
    InvestigationProgress,
    InvestigationResult,
)
from invengine.synthesis import InvestigationSynthesizer


@pytest.fixture
def result():
    plan = make_plan(
        [[("a", True)]],
        problem=InvestigationProblem(description="Checkout <script> is slow"),
    )
    context = InvestigationContext(
        plan_id=plan.id,
        session_id="s",
        evidence=[
            InvestigationEvidence(
                phase_id=plan.phases[0].id,
                query_id=plan.phases[0].queries[0].id,
                result=rows_result(2),
                summary="Check a: latency doubled",
            )
        ],
        progress=InvestigationProgress(
            total_phases=1,
            completed_phases=1,
            total_queries=1,
            completed_queries=1,
            current_status="completed",
            completion_percentage=100.0,
        ),
    )
    return InvestigationSynthesizer().synthesize("inv-42", plan, context)


@pytest.fixture
def exporter():
    return InvestigationExporter()


class TestInvestigationExporter:
    """Test export formats"""

    def test_json_round_trip(self, exporter, result):
        report = exporter.export(result, "json")

        assert report.filename == "investigation-inv-42.json"
        assert report.mime_type == "application/json"
        assert InvestigationResult.model_validate_json(report.content) == result
        assert json.loads(report.content)["id"] == "inv-42"

    def test_markdown(self, exporter, result):
        report = exporter.export(result, "markdown")

        assert report.filename == "investigation-inv-42.md"
        assert report.mime_type == "text/markdown"
        content = report.content
        assert content.startswith("# Investigation Report")
        assert "Checkout <script> is slow" in content
        assert "**Confidence:** 40.0%" in content
        assert "- Check a: latency doubled" in content
        assert "**Investigation ID:** inv-42" in content
        assert "**Phases Completed:** 1/1" in content
        assert "**Failed Queries:** 0" in content

    def test_html_escapes_markdown(self, exporter, result):
        report = exporter.export(result, "html")

        assert report.filename == "investigation-inv-42.html"
        assert report.mime_type == "text/html"
        assert "<title>Investigation Report</title>" in report.content
        assert "<pre>" in report.content
        assert "&lt;script&gt;" in report.content
        assert "<script>" not in report.content

    def test_unsupported_format(self, exporter, result):
        with pytest.raises(UnsupportedExportFormatError) as exc_info:
            exporter.export(result, "pdf")

        assert exc_info.value.details["format"] == "pdf"
        assert "markdown" in exc_info.value.details["supported"]

    def test_custom_templates_dir(self, tmp_path, result):
        (tmp_path / "report.md").write_text("Report for {{ result.id }}")

        exporter = InvestigationExporter(templates_dir=str(tmp_path))

        assert exporter.render_markdown(result) == "Report for inv-42"
