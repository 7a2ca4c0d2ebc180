#!/usr/bin/env python3
"""
Run the reconciliation pipeline: read an export directory, transform, and upsert documents.

Usage:
    python3 scripts/run_reconcile.py --source <export dir> [options]

Examples:
    # Idempotent upsert into the default SQLite store
    python3 scripts/run_reconcile.py --source ./export

    # Full refresh with post-load verification and JSON output files
    python3 scripts/run_reconcile.py --source ./export --full-replace --verify --output-dir ./out

    # Custom configuration and key namespace
    python3 scripts/run_reconcile.py --source ./export --config pipeline.yaml \\
        --namespace 6f1d3c2e-8a4b-5e9f-9c3d-2b7a1e4f5d60

Exit status is 1 when any entity type failed or verification failed.
"""

from __future__ import annotations

import argparse
import dataclasses
import os
import sys
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///reconcile.db"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run reconciliation: read -> aggregate -> transform -> upsert.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--source",
        required=True,
        type=Path,
        help="Directory holding the exported JSON source sets.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML pipeline config overriding the defaults.",
    )
    parser.add_argument(
        "--namespace",
        type=UUID,
        default=None,
        help="Document key namespace UUID (overrides the config value).",
    )
    parser.add_argument(
        "--full-replace",
        action="store_true",
        help="Clear each target collection before loading. Destructive.",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Verify written documents against the store after loading.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Also write <collection>.json and id-mapping files here.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write the run report as JSON to this path.",
    )
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", DB_URL),
        help=f"Target store URL (default: DATABASE_URL env or {DB_URL!r}).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    source_dir = args.source.resolve()
    if not source_dir.is_dir():
        print(f"ERROR: Source directory not found: {source_dir}", file=sys.stderr)
        return 1

    # Lazy imports so we fail fast on args first
    from media_config import PipelineConfig, load_pipeline_config
    from media_kernel.clock import SystemClock
    from media_kernel.db.engine import create_tables, get_session, init_engine_from_url
    from media_kernel.exceptions import ConfigError
    from media_ingestion.loaders import SqlDocumentStore
    from media_ingestion.services import ReconciliationPipeline, dump_report

    try:
        config = load_pipeline_config(args.config) if args.config else PipelineConfig()
    except (ConfigError, OSError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1
    if args.namespace is not None:
        config = dataclasses.replace(config, key_namespace=args.namespace)

    try:
        init_engine_from_url(args.database_url)
        create_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        pipeline = ReconciliationPipeline(
            SqlDocumentStore(session),
            config=config,
            clock=SystemClock(),
        )
        report = pipeline.run(
            source_dir,
            full_replace=args.full_replace,
            verify=args.verify,
            output_dir=args.output_dir,
        )
    finally:
        session.close()

    for entity in report.entities:
        line = (
            f"  {entity.collection:<12} {entity.state.value:<17} read={entity.rows_read} "
            f"transformed={entity.transformed} inserted={entity.inserted} "
            f"updated={entity.updated} failed={entity.failed} orphans={entity.orphans}"
        )
        if entity.error_code:
            line += f" error={entity.error_code}: {entity.error_message}"
        print(line)
    if report.verification_passed is not None:
        print(f"Verification: {'passed' if report.verification_passed else 'FAILED'}")
        for failure in report.verification_failures:
            print(f"  {failure}")
    if args.report:
        print(f"Report written to {dump_report(report, args.report)}")
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
