"""
Batch validator.

Classifies every record of a batch as valid or invalid against one schema
version. Per-record rules come from the RuleEngine; the duplicate rule looks
across the whole batch.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from riskflow.core.models import (
    RawRecord,
    Rejection,
    SchemaVersion,
    TypedRecord,
    ValidationReport,
    Violation,
    ViolationKind,
)
from riskflow.observability import metrics
from riskflow.observability.logger import get_logger

from .rule_engine import RuleEngine

logger = get_logger(__name__)


class Validator:
    """
    Validates record batches, never aborting on the first error.

    Records sharing an (identifier, timestamp) pair are all flagged as
    DuplicateRecord; no winner is picked.
    """

    def __init__(self, max_workers: int = 1):
        """
        Initialize the validator.

        Args:
            max_workers: Threads used for per-record rules (1 = sequential)
        """
        self.max_workers = max(1, max_workers)
        self._engines: dict[int, RuleEngine] = {}

    def _engine_for(self, schema: SchemaVersion) -> RuleEngine:
        engine = self._engines.get(schema.version)
        if engine is None or engine.schema is not schema:
            engine = RuleEngine(schema)
            self._engines[schema.version] = engine
        return engine

    def validate(self, batch: list[RawRecord], schema: SchemaVersion) -> ValidationReport:
        """
        Validate a batch of records.

        Args:
            batch: Records sharing one schema version
            schema: The schema version to apply

        Returns:
            ValidationReport partitioning the batch, in input order
        """
        engine = self._engine_for(schema)

        if self.max_workers > 1 and len(batch) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(engine.validate_record, batch))
        else:
            outcomes = [engine.validate_record(record) for record in batch]

        duplicates = self._duplicate_keys(batch)

        report = ValidationReport(schema_version=schema.version)
        for record, (typed, violations) in zip(batch, outcomes):
            if (record.identifier, record.timestamp) in duplicates:
                violations = [*violations, self._duplicate_violation(record)]

            if violations:
                report.invalid.append(Rejection(record=record, violations=violations))
                for violation in violations:
                    metrics.record_violation(violation.kind.value, violation.field)
            else:
                report.valid.append(
                    TypedRecord(
                        identifier=record.identifier,
                        timestamp=record.timestamp,
                        source=record.source,
                        values=typed,
                        schema_version=schema.version,
                    )
                )

        logger.info(
            f"Validation complete: {len(report.valid)} valid, {len(report.invalid)} invalid",
            extra={
                "schema_version": schema.version,
                "total": len(batch),
                "violations": report.violation_counts(),
            },
        )
        return report

    @staticmethod
    def _duplicate_keys(batch: list[RawRecord]) -> set[tuple[str, datetime]]:
        counts = Counter((record.identifier, record.timestamp) for record in batch)
        return {key for key, count in counts.items() if count > 1}

    @staticmethod
    def _duplicate_violation(record: RawRecord) -> Violation:
        return Violation(
            kind=ViolationKind.DUPLICATE_RECORD,
            field=None,
            rule="duplicate_record",
            message=(
                f"Identifier {record.identifier} appears more than once "
                f"at {record.timestamp.isoformat()}"
            ),
        )
