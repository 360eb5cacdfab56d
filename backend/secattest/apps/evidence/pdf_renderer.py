from __future__ import annotations

import importlib.util
from io import BytesIO
from typing import List, Optional

from .schemas import EvidenceAnswer, EvidenceModule, TrainingEvidence

PAGE_MARGIN = 50
LINE_HEIGHT = 14


def _require_reportlab() -> None:
    if importlib.util.find_spec("reportlab") is None:
        raise RuntimeError(
            "Missing dependency 'reportlab'. Install it with "
            "'pip install -e .' from the repository root."
        )


def _wrap(text: str, font: str, size: int, width: float) -> List[str]:
    """Split on whitespace and newlines so each line fits ``width`` points."""
    from reportlab.lib.utils import simpleSplit  # type: ignore[import-not-found]

    return simpleSplit(text or "", font, size, width) or [""]


def _fmt_score(score: Optional[float]) -> str:
    return "-" if score is None else f"{score * 100:.0f}%"


class _Writer:
    """Top-to-bottom text cursor over a reportlab canvas with page breaks."""

    def __init__(self, pdf, page_size) -> None:
        self.pdf = pdf
        self.width, self.height = page_size
        self.y = self.height - PAGE_MARGIN

    def _ensure_room(self, lines: int = 1) -> None:
        if self.y - lines * LINE_HEIGHT < PAGE_MARGIN:
            self.pdf.showPage()
            self.y = self.height - PAGE_MARGIN

    def heading(self, text: str, size: int = 14) -> None:
        self._ensure_room(2)
        self.y -= 6
        self.pdf.setFont("Helvetica-Bold", size)
        self.pdf.drawString(PAGE_MARGIN, self.y, text)
        self.y -= LINE_HEIGHT + 4

    def line(self, text: str, *, indent: int = 0, bold: bool = False, size: int = 10) -> None:
        font = "Helvetica-Bold" if bold else "Helvetica"
        for chunk in _wrap(text, font, size, self.width - 2 * PAGE_MARGIN - indent):
            self._ensure_room()
            self.pdf.setFont(font, size)
            self.pdf.drawString(PAGE_MARGIN + indent, self.y, chunk)
            self.y -= LINE_HEIGHT

    def field(self, label: str, value: str) -> None:
        self.line(f"{label}: {value}")

    def spacer(self) -> None:
        self.y -= LINE_HEIGHT / 2


def _write_answer(writer: _Writer, answer: Optional[EvidenceAnswer]) -> None:
    if answer is None:
        writer.line("Not answered", indent=24)
        return
    if answer.selected_option is not None:
        writer.line(f"Selected: {answer.selected_option}", indent=24)
    if answer.free_text_response:
        writer.line(f"Response: {answer.free_text_response}", indent=24)
    writer.line(f"Score: {_fmt_score(answer.score)}", indent=24)
    if answer.llm_rationale:
        writer.line(f"Rationale: {answer.llm_rationale}", indent=24)


def _write_module(writer: _Writer, module: EvidenceModule) -> None:
    writer.line(
        f"Module {module.module_index + 1}: {module.title} ({module.topic_area})"
        f" - {_fmt_score(module.module_score)}",
        bold=True,
    )
    for scenario in module.scenarios:
        writer.line(f"Scenario {scenario.scenario_id}: {scenario.narrative}", indent=12)
        _write_answer(writer, scenario.employee_answer)
    for question in module.quiz_questions:
        writer.line(f"Question {question.question_id}: {question.question}", indent=12)
        _write_answer(writer, question.employee_answer)
    writer.spacer()


def render_evidence_pdf(evidence: TrainingEvidence, tenant_display_name: str) -> bytes:
    """
    Render an evidence record as a PDF document.

    The canvas is created in invariant mode, so the same evidence always
    renders to the same bytes.
    """
    _require_reportlab()
    from reportlab.lib.pagesizes import A4  # type: ignore[import-not-found]
    from reportlab.pdfgen import canvas  # type: ignore[import-not-found]

    body = evidence.evidence
    session = body.session
    policy = body.policy_attestation
    outcome = body.outcome

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
    pdf.setTitle(f"Security training evidence {session.session_id}")
    pdf.setAuthor(tenant_display_name or session.tenant_id)
    writer = _Writer(pdf, A4)

    writer.heading("Security Awareness Training - Compliance Evidence", size=16)
    writer.field("Organisation", tenant_display_name or session.tenant_id)
    writer.field("Generated", evidence.generated_at.isoformat())

    writer.heading("Employee and session")
    writer.field("Employee", session.employee_id)
    writer.field("Session", session.session_id)
    writer.field("Attempt", f"{session.attempt_number} of {session.total_attempts}")
    writer.field("Status", session.status.value)
    writer.field("Started", session.created_at)
    writer.field("Completed", session.completed_at or "-")

    writer.heading("Outcome")
    writer.field("Aggregate score", _fmt_score(outcome.aggregate_score))
    writer.field("Pass threshold", _fmt_score(outcome.pass_threshold))
    writer.field("Result", "-" if outcome.passed is None else ("PASSED" if outcome.passed else "NOT PASSED"))
    writer.field("Weak areas", ", ".join(outcome.weak_areas) or "none")

    writer.heading("Module scores")
    for summary in outcome.module_scores:
        writer.line(
            f"{summary.module_index + 1}. {summary.title} ({summary.topic_area}): {_fmt_score(summary.score)}",
            indent=12,
        )

    writer.heading("Module detail")
    for module in body.modules:
        _write_module(writer, module)

    writer.heading("Policy attestation")
    writer.field("Configuration hash", policy.config_hash)
    writer.field("Role profile", f"{policy.role_profile_id} (v{policy.role_profile_version})")
    writer.field("Application version", policy.app_version)
    writer.field("Max attempts", str(policy.max_attempts))

    writer.heading("Integrity")
    writer.field("Evidence ID", evidence.id)
    writer.field("Schema version", str(evidence.schema_version))
    writer.line(f"SHA-256: {evidence.content_hash}", size=8)

    pdf.showPage()
    pdf.save()
    buffer.seek(0)
    return buffer.read()
