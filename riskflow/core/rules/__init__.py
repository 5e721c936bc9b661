"""
Record validation: per-record rule engine and batch validator.
"""

from .rule_engine import RuleEngine
from .validator import Validator

__all__ = [
    "RuleEngine",
    "Validator",
]
