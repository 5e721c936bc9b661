"""
LineageEntry model: the unit of reproducibility and audit for one batch.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from riskflow.utils.timestamps import utcnow

from .score_result import ThresholdLadder


class LineageEntry(BaseModel):
    """
    Links one batch to the exact versions and inputs that produced its scores.

    Attributes:
        batch_id: Unique orchestration run identifier
        schema_version: Schema version used for validation
        feature_set_version: Feature set version used for derivation
        model_version: Model version used for scoring
        thresholds: Threshold ladder in force when segments were assigned
        reference_snapshot_id: Identifier of the reference snapshot joined against
        as_of: As-of boundary of the batch
        total_count: Records ingested
        valid_count: Records that passed validation
        invalid_count: Records routed to the rejection sink
        scored_count: Score results committed
        excluded_count: Identifiers excluded during feature derivation
        results_digest: SHA-256 of the ordered, canonical score results
        supersedes: Batch this run corrects, if any
        committed_at: Commit time
    """

    batch_id: str = Field(..., min_length=1)
    schema_version: int
    feature_set_version: str
    model_version: str
    thresholds: ThresholdLadder
    reference_snapshot_id: str | None = None
    as_of: datetime | None = None
    total_count: int = Field(0, ge=0)
    valid_count: int = Field(0, ge=0)
    invalid_count: int = Field(0, ge=0)
    scored_count: int = Field(0, ge=0)
    excluded_count: int = Field(0, ge=0)
    results_digest: str
    supersedes: str | None = None
    committed_at: datetime = Field(default_factory=utcnow)

    def reproducibility_key(self) -> dict:
        """Contents that must match between two runs of the same inputs."""
        return self.model_dump(exclude={"batch_id", "committed_at"})

    class Config:
        frozen = True
        protected_namespaces = ()
