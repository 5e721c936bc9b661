"""
Command-line interface for batch risk scoring.

Usage:
    python -m riskflow.cli.batch_cli run --input <file> --reference <file> [options]
    python -m riskflow.cli.batch_cli lineage --batch-id <id> [db options]
    python -m riskflow.cli.batch_cli rejections [--batch-id <id>] [db options]
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from riskflow.config import PipelineConfigLoader, build_orchestrator
from riskflow.core.errors import PipelineError
from riskflow.features import ReferenceSnapshot, StaticReferenceSource
from riskflow.observability import metrics
from riskflow.observability.logger import get_logger
from riskflow.pipeline import BatchReport, BatchRequest
from riskflow.utils.timestamps import parse_timestamp
from riskflow.warehouse.connection import DatabaseConnectionPool
from riskflow.warehouse.quarantine import PostgresRejectionSink
from riskflow.warehouse.result_store import PostgresResultStore

logger = get_logger(__name__)


def create_pool(args) -> DatabaseConnectionPool:
    """Open a connection pool from CLI arguments (env vars fill the gaps)."""
    pool = DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )
    pool.open()
    return pool


def summarize(report: BatchReport) -> dict:
    """Operator-facing summary of a batch report."""
    summary = report.model_dump(
        mode="json",
        include={
            "batch_id",
            "state",
            "total",
            "valid",
            "invalid",
            "scored",
            "excluded_missing_reference",
            "excluded_no_observation",
            "excluded_missing_input",
            "error_kind",
            "error_message",
        },
    )
    if report.lineage is not None:
        summary["lineage"] = report.lineage.model_dump(mode="json")
    return summary


def run_command(args) -> int:
    """
    Execute a batch run.

    Returns:
        Exit code (0 when the batch committed)
    """
    # Lazy import: Spark is only needed to read input files
    from riskflow.batch.readers import BatchFileReader, create_spark_session

    for path in (args.input, args.reference):
        if not Path(path).exists():
            logger.error(f"Input file not found: {path}")
            return 1

    config = PipelineConfigLoader(args.config).load()

    if args.metrics_port:
        metrics.start_metrics_server(args.metrics_port)

    spark = create_spark_session(f"riskflow-{Path(args.input).stem}")
    try:
        reader = BatchFileReader(spark)
        records = reader.read_records(args.input, args.format, source=args.source)
        reference = reader.read_reference(args.reference, args.reference_format)
    finally:
        spark.stop()

    pool = None
    store = rejection_sink = None
    if args.store == "postgres":
        pool = create_pool(args)
        store = PostgresResultStore(pool)
        store.create_tables()
        rejection_sink = PostgresRejectionSink(pool)
        rejection_sink.create_tables()

    try:
        orchestrator = build_orchestrator(
            config,
            StaticReferenceSource(ReferenceSnapshot(reference)),
            store=store,
            rejection_sink=rejection_sink,
        )
        request = BatchRequest(
            batch_id=args.batch_id,
            records=records,
            schema_version=orchestrator.schemas.latest().version,
            feature_set_version=config.feature_set.version,
            model_version=config.model.version,
            as_of=args.as_of,
        )
        if args.supersedes:
            report = orchestrator.reprocess(args.supersedes, request)
        else:
            report = orchestrator.run(request)
        orchestrator.scorer.close()
    except PipelineError as e:
        logger.error(f"Batch not started: {e.message}", extra={"error_kind": e.kind})
        return 1
    finally:
        if pool is not None:
            pool.close()

    print(json.dumps(summarize(report), indent=2))
    return 0 if report.committed else 1


def lineage_command(args) -> int:
    """Print the lineage entry of a committed batch."""
    pool = create_pool(args)
    try:
        entry = PostgresResultStore(pool).get(args.batch_id)
    except PipelineError as e:
        logger.error(e.message, extra={"error_kind": e.kind})
        return 1
    finally:
        pool.close()
    print(json.dumps(entry.model_dump(mode="json"), indent=2))
    return 0


def rejections_command(args) -> int:
    """Print rejection statistics."""
    pool = create_pool(args)
    try:
        stats = PostgresRejectionSink(pool).statistics(args.batch_id)
    finally:
        pool.close()
    print(json.dumps(stats, indent=2))
    return 0


def _timestamp(value: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def add_db_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--db-host", default=None, help="Database host (default: $DB_HOST)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: $DB_PORT)")
    parser.add_argument("--db-name", default=None, help="Database name (default: $DB_NAME)")
    parser.add_argument("--db-user", default=None, help="Database user (default: $DB_USER)")
    parser.add_argument("--db-password", default=None, help="Database password (default: $DB_PASSWORD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Batch risk scoring pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Score a loan tape with in-memory storage
  python -m riskflow.cli.batch_cli run --input data/tape.csv --reference data/reference.csv

  # Score and commit to PostgreSQL
  python -m riskflow.cli.batch_cli run --input data/tape.csv --reference data/reference.csv \\
      --store postgres

  # Corrective run superseding a committed batch
  python -m riskflow.cli.batch_cli run --input data/tape_fixed.csv --reference data/reference.csv \\
      --store postgres --supersedes batch_20240331_001

  # Show lineage of a batch
  python -m riskflow.cli.batch_cli lineage --batch-id batch_20240331_001
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Score a batch file")
    run_parser.add_argument("--input", required=True, help="Path to the record file")
    run_parser.add_argument("--reference", required=True, help="Path to the reference data file")
    run_parser.add_argument(
        "--format", default="csv", choices=["csv", "json", "parquet"], help="Record file format (default: csv)"
    )
    run_parser.add_argument(
        "--reference-format",
        default="csv",
        choices=["csv", "json", "parquet"],
        help="Reference file format (default: csv)",
    )
    run_parser.add_argument("--config", default="config/pipeline.yaml", help="Pipeline configuration YAML")
    run_parser.add_argument("--source", default=None, help="Source tag (default: input path)")
    run_parser.add_argument("--batch-id", default=None, help="Batch id (generated when omitted)")
    run_parser.add_argument("--as-of", type=_timestamp, default=None, help="As-of time (ISO-8601)")
    run_parser.add_argument("--supersedes", default=None, help="Committed batch this run corrects")
    run_parser.add_argument(
        "--store", default="memory", choices=["memory", "postgres"], help="Result store (default: memory)"
    )
    run_parser.add_argument(
        "--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port while running"
    )
    add_db_arguments(run_parser)

    lineage_parser = subparsers.add_parser("lineage", help="Show the lineage of a committed batch")
    lineage_parser.add_argument("--batch-id", required=True, help="Batch id")
    add_db_arguments(lineage_parser)

    rejections_parser = subparsers.add_parser("rejections", help="Show rejection statistics")
    rejections_parser.add_argument("--batch-id", default=None, help="Restrict to one batch")
    add_db_arguments(rejections_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "run": run_command,
        "lineage": lineage_command,
        "rejections": rejections_command,
    }
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
