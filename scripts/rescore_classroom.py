"""
CLI entry point for rescoring every tutoring session of a classroom.
"""

import argparse
import sys
from pathlib import Path

from classroom_insight.analytics.batch import BatchRescorer, JobStatus
from classroom_insight.analytics.scorer import StruggleScorer
from classroom_insight.shared.config import settings
from classroom_insight.shared.exceptions import ClassroomNotFoundError
from classroom_insight.shared.logging import setup_logging
from classroom_insight.storage.sqlite_store import SQLiteInsightStore


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Recompute struggle scores for a classroom")
    parser.add_argument("classroom_id", help="Classroom to rescore")
    parser.add_argument("--requester-id", required=True, help="Owner of the classroom")
    parser.add_argument(
        "--db-path",
        type=Path,
        default=Path(settings.storage.db_path),
        help="SQLite database path"
    )
    parser.add_argument("--job-id", default=None, help="Optional job id for progress tracking")

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    store = SQLiteInsightStore(db_path=args.db_path)
    rescorer = BatchRescorer(StruggleScorer(store=store), store)

    try:
        progress = rescorer.rescore_classroom(args.classroom_id, args.requester_id, job_id=args.job_id)
    except ClassroomNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1

    # Print summary
    print("\n" + "=" * 50)
    print("Rescoring Summary")
    print("=" * 50)
    print(f"Job: {progress.job_id}")
    print(f"Status: {progress.status.value}")
    print(f"Sessions: {progress.total}")
    print(f"Scored: {progress.completed}")
    print(f"Failed: {progress.failed}")
    print("=" * 50)

    return 0 if progress.status == JobStatus.COMPLETED else 2


if __name__ == "__main__":
    sys.exit(main())
