"""
ReferenceValue model representing one economic/property indicator observation.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from riskflow.utils.timestamps import ensure_utc


class ReferenceValue(BaseModel):
    """
    Reference data for a geography, valid from ``effective_at`` onwards.

    Attributes:
        geography: Join key shared with records (e.g. county FIPS code)
        effective_at: When the values became known
        values: Indicator name -> numeric value (e.g. property_value, unemployment_rate)
    """

    geography: str = Field(..., min_length=1)
    effective_at: datetime
    values: dict[str, float]

    @field_validator("effective_at")
    @classmethod
    def normalize_effective_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "geography": "CA-06037",
                "effective_at": "2024-03-01T00:00:00Z",
                "values": {"property_value": 250000.0, "unemployment_rate": 0.051}
            }
        }
