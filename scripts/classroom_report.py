"""
CLI entry point for printing a classroom snapshot and, optionally, its diagnostic audit.
"""

import asyncio
import argparse
import sys
from pathlib import Path

from classroom_insight.insights.engine import InsightEngine
from classroom_insight.memory.store import EmbeddingMemoryStore
from classroom_insight.shared.config import settings
from classroom_insight.shared.exceptions import InsightError
from classroom_insight.shared.logging import setup_logging
from classroom_insight.storage.sqlite_store import SQLiteInsightStore


def _format_score(value) -> str:
    return "  -  " if value is None else f"{value:.2f}"


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Classroom struggle report")
    parser.add_argument("classroom_id", help="Classroom to report on")
    parser.add_argument("--requester-id", required=True, help="Owner of the classroom")
    parser.add_argument(
        "--db-path",
        type=Path,
        default=Path(settings.storage.db_path),
        help="SQLite database path"
    )
    parser.add_argument("--diagnostic", action="store_true", help="Also generate a diagnostic audit")
    parser.add_argument("--no-memory", action="store_true", help="Skip semantic memory enrichment")

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    store = SQLiteInsightStore(db_path=args.db_path)
    memory = None if args.no_memory else EmbeddingMemoryStore()
    engine = InsightEngine(store, memory=memory)

    try:
        snapshot = await engine.get_snapshot(args.classroom_id, args.requester_id)
    except InsightError as e:
        print(str(e), file=sys.stderr)
        return 1

    print("\n" + "=" * 50)
    print(f"Classroom: {snapshot.classroom_name}")
    print("=" * 50)
    print(f"Students: {len(snapshot.students)}")
    print(f"Lessons: {len(snapshot.lessons)}")

    for student in snapshot.students:
        scores = " ".join(
            _format_score(student.cells[lesson.id].struggle_score) for lesson in snapshot.lessons
        )
        print(f"{student.student_name[:20]:<20} {scores}")

    print("\nStruggle clusters:")
    if not snapshot.clusters:
        print("  (none)")
    for cluster in snapshot.clusters:
        print(
            f"  {cluster.topic}: avg {cluster.avg_struggle_score:.2f}, "
            f"{cluster.student_count} students, driven by {cluster.dominant_dimension.value}"
        )
        if cluster.memory_insight:
            print(f"    e.g. {cluster.memory_insight}")

    if args.diagnostic:
        try:
            audit = await engine.diagnostics.generate_audit(snapshot)
        except InsightError as e:
            print(f"\nDiagnostic failed: {str(e)}", file=sys.stderr)
            return 2

        print("\n" + "=" * 50)
        print(f"Diagnostic ({audit.failure_type.value}, {audit.severity.value})")
        print("=" * 50)
        print(audit.root_cause)
        print()
        print(audit.bridge_activity)
        for recommendation in audit.recommendations:
            print(f"- {recommendation}")

    print("=" * 50)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
