"""
InsightEngine: entry points the transport layer calls for classroom insights.
"""

from typing import Optional

from classroom_insight.insights.diagnostic import DiagnosticGenerator
from classroom_insight.insights.models import ClassroomSnapshot, DiagnosticAudit
from classroom_insight.insights.snapshot import SnapshotBuilder
from classroom_insight.memory.base import SemanticMemory
from classroom_insight.shared.llm import LLMClient
from classroom_insight.shared.logging import get_logger
from classroom_insight.storage.base import InsightStore

logger = get_logger(__name__)


class InsightEngine:
    """Snapshot and diagnostic facade over one store."""

    def __init__(
        self,
        store: InsightStore,
        memory: Optional[SemanticMemory] = None,
        llm: Optional[LLMClient] = None
    ):
        self.snapshots = SnapshotBuilder(store, memory=memory)
        self.diagnostics = DiagnosticGenerator(llm=llm)

    async def get_snapshot(self, classroom_id: str, requester_id: str) -> ClassroomSnapshot:
        return await self.snapshots.build_snapshot(classroom_id, requester_id)

    async def get_diagnostic(self, classroom_id: str, requester_id: str) -> DiagnosticAudit:
        """Build a fresh snapshot and audit it."""
        snapshot = await self.get_snapshot(classroom_id, requester_id)
        logger.info(
            f"Generating diagnostic for classroom {classroom_id} "
            f"({len(snapshot.clusters)} clusters)"
        )
        return await self.diagnostics.generate_audit(snapshot)
