"""
PostgreSQL-backed lineage and result store.

Each batch is committed in a single transaction: the lineage row and all of
its score rows become visible together. The primary key on ``batch_id``
enforces append-only, unique batches.
"""

import json

import psycopg
from psycopg.types.json import Jsonb

from riskflow.core.errors import StorageWriteFailure, UnknownBatch
from riskflow.core.models import BatchEvent, LineageEntry, ScoreResult, ThresholdLadder
from riskflow.observability.logger import get_logger
from riskflow.store.result_store import ResultStore

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

DDL = [
    """
    CREATE TABLE IF NOT EXISTS risk_lineage (
        batch_id TEXT PRIMARY KEY,
        schema_version INTEGER NOT NULL,
        feature_set_version TEXT NOT NULL,
        model_version TEXT NOT NULL,
        thresholds JSONB NOT NULL,
        reference_snapshot_id TEXT,
        as_of TIMESTAMPTZ,
        total_count INTEGER NOT NULL,
        valid_count INTEGER NOT NULL,
        invalid_count INTEGER NOT NULL,
        scored_count INTEGER NOT NULL,
        excluded_count INTEGER NOT NULL,
        results_digest TEXT NOT NULL,
        supersedes TEXT REFERENCES risk_lineage (batch_id),
        committed_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS risk_score (
        batch_id TEXT NOT NULL REFERENCES risk_lineage (batch_id),
        position INTEGER NOT NULL,
        identifier TEXT NOT NULL,
        feature_set_version TEXT NOT NULL,
        model_version TEXT NOT NULL,
        score DOUBLE PRECISION NOT NULL CHECK (score >= 0 AND score <= 1),
        segment TEXT NOT NULL,
        scored_at TIMESTAMPTZ NOT NULL,
        PRIMARY KEY (batch_id, position)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_risk_score_identifier ON risk_score (identifier)",
    """
    CREATE TABLE IF NOT EXISTS batch_event (
        batch_id TEXT NOT NULL,
        sequence INTEGER NOT NULL,
        from_state TEXT,
        to_state TEXT NOT NULL,
        occurred_at TIMESTAMPTZ NOT NULL,
        detail JSONB NOT NULL DEFAULT '{}'::jsonb,
        PRIMARY KEY (batch_id, sequence)
    )
    """,
]

LINEAGE_COLUMNS = """
    batch_id, schema_version, feature_set_version, model_version, thresholds,
    reference_snapshot_id, as_of, total_count, valid_count, invalid_count,
    scored_count, excluded_count, results_digest, supersedes, committed_at
"""


class PostgresResultStore(ResultStore):
    """
    Result store persisting to PostgreSQL through a DatabaseConnectionPool.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def create_tables(self) -> None:
        """Create the lineage, score and event tables if missing."""
        with self.pool.transaction() as cur:
            for statement in DDL:
                cur.execute(statement)
        logger.info("Result store tables ready")

    def _commit(self, entry: LineageEntry, results: list[ScoreResult]) -> None:
        lineage_sql = f"""
            INSERT INTO risk_lineage ({LINEAGE_COLUMNS})
            VALUES (
                %(batch_id)s, %(schema_version)s, %(feature_set_version)s, %(model_version)s,
                %(thresholds)s, %(reference_snapshot_id)s, %(as_of)s, %(total_count)s,
                %(valid_count)s, %(invalid_count)s, %(scored_count)s, %(excluded_count)s,
                %(results_digest)s, %(supersedes)s, %(committed_at)s
            )
        """
        score_sql = """
            INSERT INTO risk_score (
                batch_id, position, identifier, feature_set_version, model_version,
                score, segment, scored_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        """

        params = entry.model_dump()
        params["thresholds"] = Jsonb(entry.thresholds.model_dump(mode="json"))

        try:
            with self.pool.transaction() as cur:
                cur.execute(lineage_sql, params)
                if results:
                    cur.executemany(
                        score_sql,
                        [
                            (
                                entry.batch_id,
                                position,
                                r.identifier,
                                r.feature_set_version,
                                r.model_version,
                                r.score,
                                r.segment.value,
                                r.scored_at,
                            )
                            for position, r in enumerate(results)
                        ],
                    )
        except psycopg.Error as e:
            logger.error(
                f"Failed to commit batch {entry.batch_id}: {e}",
                extra={"batch_id": entry.batch_id},
            )
            raise StorageWriteFailure(f"Failed to commit batch {entry.batch_id}: {e}") from e

    @staticmethod
    def _entry_from_row(row: dict) -> LineageEntry:
        row = dict(row)
        thresholds = row["thresholds"]
        if isinstance(thresholds, str):
            thresholds = json.loads(thresholds)
        row["thresholds"] = ThresholdLadder(**thresholds)
        return LineageEntry(**row)

    @staticmethod
    def _result_from_row(row: dict) -> ScoreResult:
        return ScoreResult(
            identifier=row["identifier"],
            feature_set_version=row["feature_set_version"],
            model_version=row["model_version"],
            score=row["score"],
            segment=row["segment"],
            scored_at=row["scored_at"],
        )

    def get(self, batch_id: str) -> LineageEntry:
        rows = self.pool.execute_query(
            f"SELECT {LINEAGE_COLUMNS} FROM risk_lineage WHERE batch_id = %s",
            (batch_id,),
        )
        if not rows:
            raise UnknownBatch(batch_id)
        return self._entry_from_row(rows[0])

    def results(self, batch_id: str) -> list[ScoreResult]:
        self.get(batch_id)
        rows = self.pool.execute_query(
            "SELECT * FROM risk_score WHERE batch_id = %s ORDER BY position",
            (batch_id,),
        )
        return [self._result_from_row(row) for row in rows]

    def results_for_record(self, identifier: str) -> list[tuple[str, ScoreResult]]:
        rows = self.pool.execute_query(
            """
            SELECT s.*
            FROM risk_score s
            JOIN risk_lineage l ON l.batch_id = s.batch_id
            WHERE s.identifier = %s
            ORDER BY l.committed_at, s.batch_id, s.position
            """,
            (identifier,),
        )
        return [(row["batch_id"], self._result_from_row(row)) for row in rows]

    def list_batches(self) -> list[LineageEntry]:
        rows = self.pool.execute_query(
            f"SELECT {LINEAGE_COLUMNS} FROM risk_lineage ORDER BY committed_at, batch_id"
        )
        return [self._entry_from_row(row) for row in rows]

    def on_event(self, event: BatchEvent) -> None:
        self.pool.execute_command(
            """
            INSERT INTO batch_event (batch_id, sequence, from_state, to_state, occurred_at, detail)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                event.batch_id,
                event.sequence,
                event.from_state.value if event.from_state else None,
                event.to_state.value,
                event.occurred_at,
                Jsonb(event.model_dump(mode="json")["detail"]),
            ),
        )

    def events(self, batch_id: str) -> list[BatchEvent]:
        rows = self.pool.execute_query(
            "SELECT * FROM batch_event WHERE batch_id = %s ORDER BY sequence",
            (batch_id,),
        )
        return [BatchEvent(**row) for row in rows]
