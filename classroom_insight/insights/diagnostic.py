"""
Diagnostic generator: turns a classroom snapshot into a root-cause audit
written by the text-generation provider.
"""

import re
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from classroom_insight.insights.models import (
    ClassroomSnapshot,
    DiagnosticAudit,
    DiagnosticSeverity,
    FailureType,
)
from classroom_insight.shared.config import DiagnosticConfig, settings
from classroom_insight.shared.exceptions import DiagnosticParseError
from classroom_insight.shared.llm import LLMClient
from classroom_insight.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)

ROOT_CAUSE_FALLBACK = "Root cause could not be determined."
BRIDGE_ACTIVITY_FALLBACK = "No bridge activity was generated."

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

SYSTEM_PROMPT_TEMPLATE = """You are a pedagogical diagnostics expert for K-12 classrooms.
Your task is to analyze classroom struggle data and produce precise, actionable diagnoses for the teacher.

## LANGUAGE
- Write every field of your answer in {language}.
- Keep the tone natural and appropriate for working teachers.

## FAILURE TYPES
- conceptual: the students do not understand the underlying concept
- procedural: the students know the concept but cannot apply it
- motivational: the students show signs of giving up or apathy
- prerequisite: required prior knowledge is missing
- linguistic: academic vocabulary is the barrier

## SEVERITY
- low | medium | high | critical

Respond ONLY with a single valid JSON object. No text before or after the JSON."""

PROMPT_TEMPLATE = """Analyze the following classroom struggle data and produce a pedagogical diagnosis.

## CLASSROOM DATA
{summary}

## YOUR TASK
Produce the diagnosis in exactly this JSON format:

{{
  "rootCause": "Clear description of the root cause of the learning problem (2-3 sentences)",
  "failureType": "conceptual|procedural|motivational|prerequisite|linguistic",
  "severity": "low|medium|high|critical",
  "bridgeActivity": "## Bridge Activity (10 minutes)\\n\\n**Goal:** ...\\n\\n**Materials:** ...\\n\\n**Steps:**\\n1. ...\\n2. ...\\n3. ...\\n\\n**Wrap-up:** ...",
  "recommendations": [
    "Specific recommendation 1 for the teacher",
    "Specific recommendation 2 for the teacher",
    "Specific recommendation 3 for the teacher"
  ]
}}

Respond ONLY with the JSON."""


def extract_json_object(raw: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a free-text response.

    A markdown fence is stripped first, then the text between the first "{"
    and the last "}" is parsed.

    Raises:
        DiagnosticParseError: no object delimiters, invalid JSON, or not an object
    """
    cleaned = raw.strip()
    fence = _FENCE_PATTERN.search(cleaned)
    if fence:
        cleaned = fence.group(1).strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise DiagnosticParseError("No JSON object found in generation response", raw_response=raw)

    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise DiagnosticParseError(f"Invalid JSON in generation response: {str(e)}", raw_response=raw) from e

    if not isinstance(parsed, dict):
        raise DiagnosticParseError("Generation response JSON is not an object", raw_response=raw)
    return parsed


def parse_diagnostic_response(raw: str, max_recommendations: int = 5) -> DiagnosticAudit:
    """
    Parse a generation response into an audit.

    Missing or unrecognized fields are repaired rather than rejected; only a
    response with no usable JSON object raises.
    """
    parsed = extract_json_object(raw)

    try:
        failure_type = FailureType(parsed.get("failureType"))
    except ValueError:
        failure_type = FailureType.CONCEPTUAL

    try:
        severity = DiagnosticSeverity(parsed.get("severity"))
    except ValueError:
        severity = DiagnosticSeverity.MEDIUM

    recommendations = parsed.get("recommendations")
    if isinstance(recommendations, list):
        recommendations = [str(item) for item in recommendations][:max_recommendations]
    else:
        recommendations = []

    return DiagnosticAudit(
        generated_at=datetime.now(timezone.utc).isoformat(),
        root_cause=str(parsed.get("rootCause") or ROOT_CAUSE_FALLBACK),
        failure_type=failure_type,
        severity=severity,
        bridge_activity=str(parsed.get("bridgeActivity") or BRIDGE_ACTIVITY_FALLBACK),
        recommendations=recommendations,
    )


class DiagnosticGenerator:
    """Generate diagnostic audits for classroom snapshots."""

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        config: Optional[DiagnosticConfig] = None,
        critical_threshold: Optional[float] = None
    ):
        self._llm = llm
        self.config = config or settings.diagnostic
        self.critical_threshold = (
            critical_threshold
            if critical_threshold is not None
            else settings.analytics.critical_cell_threshold
        )

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    def critical_cells(self, snapshot: ClassroomSnapshot) -> List[Dict[str, Any]]:
        """Highest-struggle (student, lesson) pairs across the whole snapshot."""
        cells = []
        for student in snapshot.students:
            for cell in student.cells.values():
                if not cell.has_data or cell.struggle_score is None:
                    continue
                if cell.struggle_score >= self.critical_threshold:
                    cells.append({
                        "student": student.student_name,
                        "lesson": cell.lesson_title,
                        "struggle": cell.struggle_score,
                    })

        cells.sort(key=lambda item: item["struggle"], reverse=True)
        return cells[:self.config.max_critical_cells]

    def build_summary(self, snapshot: ClassroomSnapshot) -> Dict[str, Any]:
        clusters = []
        for cluster in snapshot.clusters[:self.config.max_clusters]:
            entry = {
                "topic": cluster.topic,
                "subject": cluster.subject,
                "avgStruggle": round(cluster.avg_struggle_score, 2),
                "studentCount": cluster.student_count,
                "dominantDimension": cluster.dominant_dimension.value,
            }
            if cluster.memory_insight:
                entry["memoryInsight"] = cluster.memory_insight
            clusters.append(entry)

        return {
            "classroom": snapshot.classroom_name,
            "totalStudents": len(snapshot.students),
            "totalLessons": len(snapshot.lessons),
            "struggleClusters": clusters,
            "criticalCells": self.critical_cells(snapshot),
        }

    def build_prompt(self, summary: Dict[str, Any]) -> str:
        return PROMPT_TEMPLATE.format(summary=json.dumps(summary, indent=2, ensure_ascii=False))

    def build_system_prompt(self) -> str:
        return SYSTEM_PROMPT_TEMPLATE.format(language=self.config.language)

    async def generate_audit(self, snapshot: ClassroomSnapshot) -> DiagnosticAudit:
        """
        Ask the text-generation provider for a root-cause audit of the snapshot.

        Raises:
            UpstreamGenerationError: the provider call failed
            DiagnosticParseError: the response held no usable JSON object
        """
        prompt = self.build_prompt(self.build_summary(snapshot))

        raw = await self.llm.get_completion(
            prompt=prompt,
            system_prompt=self.build_system_prompt(),
            model=settings.llm.diagnostic_model,
        )

        try:
            audit = parse_diagnostic_response(raw, max_recommendations=self.config.max_recommendations)
        except DiagnosticParseError:
            log_with_context(
                logger, logging.ERROR,
                f"Unparseable diagnostic response: {raw[:200]}",
                classroom_id=snapshot.classroom_id, action="generate_audit",
            )
            raise

        log_with_context(
            logger, logging.INFO,
            f"Generated diagnostic audit: {audit.failure_type.value}/{audit.severity.value}",
            classroom_id=snapshot.classroom_id, action="generate_audit",
        )
        return audit
