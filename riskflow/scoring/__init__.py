"""
Risk scoring: model capability, registry, threshold ladders and the scorer.
"""

from .model import LogisticScorecardModel, ModelRegistry, RiskModel
from .scorer import Scorer
from .thresholds import parse_threshold_ladder, tiered_ladder

__all__ = [
    "RiskModel",
    "LogisticScorecardModel",
    "ModelRegistry",
    "Scorer",
    "parse_threshold_ladder",
    "tiered_ladder",
]
