"""
FeatureVector model representing derived risk features for one identifier.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class FeatureVector(BaseModel):
    """
    Derived features keyed by (identifier, as_of); never mutated after creation.

    Attributes:
        identifier: Record identifier the features describe
        as_of: Point in time the features are valid for
        feature_set_version: Version pinning the derivation formulas
        features: Feature name -> numeric value
        reference_times: Reference indicator -> effective time of the joined value
    """

    identifier: str
    as_of: datetime
    feature_set_version: str
    features: dict[str, float]
    reference_times: dict[str, datetime] = Field(default_factory=dict)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "identifier": "L1",
                "as_of": "2024-03-31T00:00:00Z",
                "feature_set_version": "loan-risk-v1",
                "features": {
                    "credit_score": 720.0,
                    "loan_to_value": 0.75,
                    "balance_to_valuation": 0.74,
                    "delinquency_count_90d": 0.0
                },
                "reference_times": {"property_value": "2024-03-01T00:00:00Z"}
            }
        }
