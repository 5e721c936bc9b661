"""
RawRecord model representing one ingested loan or telemetry observation.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from riskflow.utils.timestamps import ensure_utc


class RawRecord(BaseModel):
    """
    One loan/device observation at a point in time (immutable once ingested).

    Attributes:
        identifier: Business key of the loan or device
        timestamp: Observation time (normalized to UTC)
        fields: Untyped field name -> raw value mapping as received
        source: Tag of the ingestion source
    """

    identifier: str = Field(..., min_length=1)
    timestamp: datetime
    fields: dict[str, Any] = Field(default_factory=dict)
    source: str = "unknown"

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "identifier": "L1",
                "timestamp": "2024-03-31T00:00:00Z",
                "fields": {
                    "principal_balance": "185000.00",
                    "credit_score": "720",
                    "ltv": "0.75",
                    "geography": "CA-06037",
                    "effective_date": "2021-06-01",
                    "termination_date": "2051-06-01"
                },
                "source": "servicer_tape"
            }
        }
