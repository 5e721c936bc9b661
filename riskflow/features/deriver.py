"""
Feature derivation.

Turns the valid records of a batch into one FeatureVector per identifier,
as of a single point in time. Only information available at or before
``as_of`` is used: later records are ignored and reference values are joined
with as-of semantics.
"""

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from riskflow.core.errors import MissingFeatureInput, MissingReferenceData
from riskflow.core.models import FeatureVector, TypedRecord
from riskflow.observability import metrics
from riskflow.observability.logger import get_logger
from riskflow.utils.timestamps import ensure_utc, parse_date

from .feature_set import FeatureDefinition, FeatureSetVersion
from .reference import ReferenceSnapshot

logger = get_logger(__name__)

NO_OBSERVATION = "NoObservation"


class DerivationExclusion(BaseModel):
    """
    An identifier that produced no feature vector.

    Attributes:
        identifier: Record identifier
        reason: MissingReferenceData, MissingFeatureInput or NoObservation
        feature: Feature whose input was missing
        indicator: Reference indicator that had no value at or before as_of
        geography: Geography the reference join was attempted for
        message: Human-readable explanation
    """

    identifier: str
    reason: str
    feature: str | None = None
    indicator: str | None = None
    geography: str | None = None
    message: str

    class Config:
        frozen = True


class DerivationReport(BaseModel):
    """Feature vectors and exclusions of one derivation run, in first-appearance order."""

    vectors: list[FeatureVector] = Field(default_factory=list)
    excluded: list[DerivationExclusion] = Field(default_factory=list)

    def excluded_count(self, reason: str) -> int:
        return sum(1 for e in self.excluded if e.reason == reason)


class _Derivation:
    """Feature computation for one identifier's history."""

    def __init__(
        self,
        identifier: str,
        history: list[TypedRecord],
        as_of: datetime,
        snapshot: ReferenceSnapshot,
        feature_set: FeatureSetVersion,
    ):
        self.identifier = identifier
        self.history = history
        self.current = history[-1]
        self.as_of = as_of
        self.snapshot = snapshot
        self.feature_set = feature_set
        self.reference_times: dict[str, datetime] = {}

    def vector(self) -> FeatureVector:
        features = {
            definition.name: self._compute(definition)
            for definition in self.feature_set.features
        }
        return FeatureVector(
            identifier=self.identifier,
            as_of=self.as_of,
            feature_set_version=self.feature_set.version,
            features=features,
            reference_times=self.reference_times,
        )

    def _compute(self, definition: FeatureDefinition) -> float:
        try:
            return self._formula(definition)
        except (MissingReferenceData, MissingFeatureInput):
            if definition.optional:
                return float(definition.default)
            raise

    def _formula(self, definition: FeatureDefinition) -> float:
        if definition.kind == "field":
            return self._field(definition, definition.field)

        if definition.kind == "reference":
            return self._reference(definition.indicator)

        if definition.kind == "ratio":
            numerator = self._field(definition, definition.numerator)
            if definition.denominator_field:
                denominator = self._field(definition, definition.denominator_field)
                if denominator == 0:
                    raise MissingFeatureInput(self.identifier, definition.name, definition.denominator_field)
            else:
                denominator = self._reference(definition.indicator)
                if denominator == 0:
                    raise MissingReferenceData(
                        self.identifier,
                        self._geography(),
                        definition.indicator,
                        f"Reference '{definition.indicator}' is zero for geography "
                        f"{self._geography()!r} (record {self.identifier})",
                    )
            return numerator / denominator

        if definition.kind == "trailing_count":
            window = timedelta(days=definition.window_days or self.feature_set.window_days)
            start = self.as_of - window
            count = 0
            for record in self.history:
                if not start < record.timestamp <= self.as_of:
                    continue
                value = record.values.get(definition.field)
                if value is not None and float(value) >= definition.threshold:
                    count += 1
            return float(count)

        if definition.kind == "age_days":
            value = self.current.values.get(definition.field)
            if value is None:
                raise MissingFeatureInput(self.identifier, definition.name, definition.field)
            return float((self.as_of.date() - parse_date(value)).days)

        raise ValueError(f"Unsupported feature kind: {definition.kind}")

    def _field(self, definition: FeatureDefinition, field: str) -> float:
        value = self.current.values.get(field)
        if value is None:
            raise MissingFeatureInput(self.identifier, definition.name, field)
        return float(value)

    def _geography(self) -> str | None:
        return self.current.values.get(self.feature_set.geography_field)

    def _reference(self, indicator: str) -> float:
        geography = self._geography()
        found = None
        if geography is not None:
            found = self.snapshot.get_indicator(geography, indicator, self.as_of)
        if found is None:
            raise MissingReferenceData(self.identifier, geography, indicator)
        value, effective_at = found
        self.reference_times[indicator] = effective_at
        return float(value)


class FeatureDeriver:
    """
    Derives feature vectors for a batch of valid records.

    Each identifier is derived independently, so identifiers may be processed
    in parallel; output order always follows first appearance in the batch.
    """

    def __init__(self, max_workers: int = 1):
        self.max_workers = max(1, max_workers)

    def derive(
        self,
        valid_records: Iterable[TypedRecord],
        as_of: datetime,
        snapshot: ReferenceSnapshot,
        feature_set: FeatureSetVersion,
    ) -> DerivationReport:
        """
        Derive one feature vector per identifier.

        Args:
            valid_records: Records that passed validation (never invalid ones)
            as_of: Point in time the features are computed for
            snapshot: Reference snapshot acquired at batch start
            feature_set: Feature formulas to apply

        Returns:
            DerivationReport with vectors and per-identifier exclusions
        """
        as_of = ensure_utc(as_of)
        groups = self._group(valid_records)

        def derive_one(item: tuple[str, list[TypedRecord]]) -> FeatureVector | DerivationExclusion:
            identifier, records = item
            return self._derive_identifier(identifier, records, as_of, snapshot, feature_set)

        items = list(groups.items())
        if self.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(derive_one, items))
        else:
            outcomes = [derive_one(item) for item in items]

        report = DerivationReport()
        for outcome in outcomes:
            if isinstance(outcome, FeatureVector):
                report.vectors.append(outcome)
            else:
                report.excluded.append(outcome)
                metrics.increment_counter(metrics.derivation_exclusions_total, 1, reason=outcome.reason)

        logger.info(
            f"Derived {len(report.vectors)} feature vectors, excluded {len(report.excluded)}",
            extra={
                "feature_set_version": feature_set.version,
                "as_of": as_of.isoformat(),
                "reference_snapshot_id": snapshot.snapshot_id,
            },
        )
        return report

    @staticmethod
    def _group(records: Iterable[TypedRecord]) -> dict[str, list[TypedRecord]]:
        groups: dict[str, list[TypedRecord]] = {}
        for record in records:
            groups.setdefault(record.identifier, []).append(record)
        return groups

    @staticmethod
    def _derive_identifier(
        identifier: str,
        records: list[TypedRecord],
        as_of: datetime,
        snapshot: ReferenceSnapshot,
        feature_set: FeatureSetVersion,
    ) -> FeatureVector | DerivationExclusion:
        history = sorted(
            (r for r in records if r.timestamp <= as_of),
            key=lambda r: r.timestamp,
        )
        if not history:
            return DerivationExclusion(
                identifier=identifier,
                reason=NO_OBSERVATION,
                message=f"No observation of {identifier} at or before {as_of.isoformat()}",
            )

        try:
            return _Derivation(identifier, history, as_of, snapshot, feature_set).vector()
        except MissingReferenceData as e:
            logger.warning(e.message, extra={"identifier": identifier, "indicator": e.indicator})
            return DerivationExclusion(
                identifier=identifier,
                reason=e.kind,
                indicator=e.indicator,
                geography=e.geography,
                message=e.message,
            )
        except MissingFeatureInput as e:
            logger.warning(e.message, extra={"identifier": identifier, "feature": e.feature})
            return DerivationExclusion(
                identifier=identifier,
                reason=e.kind,
                feature=e.feature,
                message=e.message,
            )
