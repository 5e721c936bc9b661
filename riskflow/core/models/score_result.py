"""
Scoring models: risk segments, the threshold ladder and per-record results.
"""

import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class RiskSegment(str, Enum):
    """Ordered risk buckets assigned from a continuous score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(RiskSegment).index(self)


class ThresholdStep(BaseModel):
    """Scores strictly below ``upper`` fall into ``segment``."""

    upper: float = Field(..., gt=0.0, le=1.0)
    segment: RiskSegment

    class Config:
        frozen = True


class ThresholdLadder(BaseModel):
    """
    Configurable threshold ladder mapping a score to a RiskSegment.

    A score belongs to the first step whose ``upper`` is strictly greater
    than it, so a score equal to a boundary lands in the upper bucket.
    Scores at or above the last boundary get ``top``.

    Attributes:
        steps: Ordered (upper, segment) steps with increasing bounds and segments
        top: Segment for scores at or above the last boundary
    """

    steps: list[ThresholdStep]
    top: RiskSegment = RiskSegment.HIGH

    @model_validator(mode="after")
    def check_ordering(self) -> "ThresholdLadder":
        """Validate that bounds and segments both strictly increase."""
        previous_upper = 0.0
        previous_rank = -1
        for step in self.steps:
            if step.upper <= previous_upper:
                raise ValueError("Threshold bounds must be strictly increasing")
            if step.segment.rank <= previous_rank:
                raise ValueError("Threshold segments must be strictly increasing")
            previous_upper = step.upper
            previous_rank = step.segment.rank
        if self.top.rank <= previous_rank:
            raise ValueError("Top segment must rank above every step segment")
        return self

    def assign(self, score: float) -> RiskSegment:
        for step in self.steps:
            if score < step.upper:
                return step.segment
        return self.top

    @classmethod
    def default(cls) -> "ThresholdLadder":
        """The standard ladder: < 0.05 low, < 0.20 medium, otherwise high."""
        return cls(
            steps=[
                ThresholdStep(upper=0.05, segment=RiskSegment.LOW),
                ThresholdStep(upper=0.20, segment=RiskSegment.MEDIUM),
            ],
            top=RiskSegment.HIGH,
        )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "steps": [
                    {"upper": 0.05, "segment": "low"},
                    {"upper": 0.20, "segment": "medium"}
                ],
                "top": "high"
            }
        }


class ScoreResult(BaseModel):
    """
    Score for one feature vector under one model version.

    Attributes:
        identifier: Record identifier
        feature_set_version: Feature set the input vector was derived with
        model_version: Model version that produced the score
        score: Probability-like score in [0, 1]
        segment: Risk segment from the threshold ladder
        scored_at: Point in time the score refers to (the vector's as_of)
    """

    identifier: str
    feature_set_version: str
    model_version: str
    score: float = Field(..., ge=0.0, le=1.0)
    segment: RiskSegment
    scored_at: datetime

    @field_validator("score")
    @classmethod
    def check_finite(cls, v: float) -> float:
        if math.isnan(v):
            raise ValueError("score must be a number")
        return v

    class Config:
        frozen = True
        protected_namespaces = ()
        json_schema_extra = {
            "example": {
                "identifier": "L1",
                "feature_set_version": "loan-risk-v1",
                "model_version": "scorecard-2024.1",
                "score": 0.031,
                "segment": "low",
                "scored_at": "2024-03-31T00:00:00Z"
            }
        }
