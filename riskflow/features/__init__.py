"""
Feature derivation: feature set versions, reference snapshots and the deriver.
"""

from .deriver import NO_OBSERVATION, DerivationExclusion, DerivationReport, FeatureDeriver
from .feature_set import (
    FeatureDefinition,
    FeatureSetRegistry,
    FeatureSetVersion,
    default_feature_set,
    load_feature_set,
    parse_feature_set,
)
from .reference import ReferenceDataSource, ReferenceSnapshot, StaticReferenceSource

__all__ = [
    "FeatureDefinition",
    "FeatureSetVersion",
    "FeatureSetRegistry",
    "default_feature_set",
    "parse_feature_set",
    "load_feature_set",
    "ReferenceSnapshot",
    "ReferenceDataSource",
    "StaticReferenceSource",
    "FeatureDeriver",
    "DerivationReport",
    "DerivationExclusion",
    "NO_OBSERVATION",
]
