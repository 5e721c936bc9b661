"""
PostgreSQL rejection sink.

Invalid records are written to ``risk_rejection`` with their raw payload and
every violation, for review and resubmission.
"""

from typing import Any

import psycopg
from psycopg.types.json import Jsonb

from riskflow.core.errors import StorageWriteFailure
from riskflow.core.models import Rejection
from riskflow.observability.logger import get_logger
from riskflow.store.rejection import RejectionSink

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

DDL = """
    CREATE TABLE IF NOT EXISTS risk_rejection (
        rejection_id BIGSERIAL PRIMARY KEY,
        batch_id TEXT NOT NULL,
        identifier TEXT NOT NULL,
        record_timestamp TIMESTAMPTZ NOT NULL,
        source TEXT NOT NULL,
        raw_payload JSONB NOT NULL,
        violation_kinds TEXT[] NOT NULL,
        violations JSONB NOT NULL,
        rejected_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        reviewed BOOLEAN NOT NULL DEFAULT FALSE
    )
"""


class PostgresRejectionSink(RejectionSink):
    """Rejection sink writing one row per rejected record."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def create_tables(self) -> None:
        self.pool.execute_command(DDL)

    def emit(self, batch_id: str, rejections: list[Rejection]) -> int:
        """
        Write a batch's rejections in one transaction.

        Raises:
            StorageWriteFailure: If the insert fails
        """
        if not rejections:
            return 0

        query = """
            INSERT INTO risk_rejection (
                batch_id, identifier, record_timestamp, source,
                raw_payload, violation_kinds, violations
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        rows = []
        for rejection in rejections:
            record = rejection.record.model_dump(mode="json")
            rows.append(
                (
                    batch_id,
                    rejection.record.identifier,
                    rejection.record.timestamp,
                    rejection.record.source,
                    Jsonb(record["fields"]),
                    sorted(kind.value for kind in rejection.kinds),
                    Jsonb([v.model_dump(mode="json") for v in rejection.violations]),
                )
            )

        try:
            with self.pool.transaction() as cur:
                cur.executemany(query, rows)
        except psycopg.Error as e:
            raise StorageWriteFailure(f"Failed to quarantine rejections of batch {batch_id}: {e}") from e

        logger.info(
            f"Quarantined {len(rows)} records",
            extra={"batch_id": batch_id, "rejected": len(rows)},
        )
        return len(rows)

    def statistics(self, batch_id: str | None = None) -> dict[str, Any]:
        where = "WHERE batch_id = %(batch_id)s" if batch_id else ""
        params = {"batch_id": batch_id} if batch_id else None

        total = self.pool.execute_query(
            f"""
            SELECT
                COUNT(*) AS total_rejected,
                COUNT(*) FILTER (WHERE reviewed = FALSE) AS unreviewed
            FROM risk_rejection {where}
            """,
            params,
        )[0]
        by_kind = self.pool.execute_query(
            f"""
            SELECT kind, COUNT(*) AS count
            FROM risk_rejection, UNNEST(violation_kinds) AS kind
            {where}
            GROUP BY kind
            """,
            params,
        )
        by_batch = self.pool.execute_query(
            f"SELECT batch_id, COUNT(*) AS count FROM risk_rejection {where} GROUP BY batch_id",
            params,
        )

        return {
            "total_rejected": total["total_rejected"],
            "unreviewed": total["unreviewed"],
            "by_kind": {row["kind"]: row["count"] for row in by_kind},
            "by_batch": {row["batch_id"]: row["count"] for row in by_batch},
        }

    def mark_reviewed(self, batch_id: str, identifier: str | None = None) -> int:
        """Mark rejections of a batch (optionally one identifier) as reviewed."""
        if identifier is None:
            return self.pool.execute_command(
                "UPDATE risk_rejection SET reviewed = TRUE WHERE batch_id = %s",
                (batch_id,),
            )
        return self.pool.execute_command(
            "UPDATE risk_rejection SET reviewed = TRUE WHERE batch_id = %s AND identifier = %s",
            (batch_id, identifier),
        )
