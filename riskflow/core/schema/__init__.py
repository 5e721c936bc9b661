"""
Schema registry, evolution checks and field configuration.
"""

from .config import SchemaBuilder, SchemaConfigLoader, parse_fields
from .evolution import SchemaEvolutionManager
from .registry import SchemaRegistry

__all__ = [
    "SchemaRegistry",
    "SchemaEvolutionManager",
    "SchemaConfigLoader",
    "SchemaBuilder",
    "parse_fields",
]
