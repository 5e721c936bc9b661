"""
Field rule implementations.

Provides validators for required fields, type parsing, ranges, regex
patterns, enumerated values and temporal consistency.
"""

from .base_validator import BaseValidator, ValidationError
from .range_validator import RangeValidator
from .regex_validator import AllowedValuesValidator, RegexValidator
from .required_field_validator import RequiredFieldValidator, is_blank
from .temporal_validator import TemporalValidator
from .type_validator import TypeValidator

__all__ = [
    "BaseValidator",
    "ValidationError",
    "RequiredFieldValidator",
    "TypeValidator",
    "RangeValidator",
    "RegexValidator",
    "AllowedValuesValidator",
    "TemporalValidator",
    "is_blank",
]
