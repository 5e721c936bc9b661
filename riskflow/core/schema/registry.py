"""
Schema registry for managing versioned record schemas.

Append-only: versions are never modified or deleted once published, so any
version referenced by existing lineage stays resolvable.
"""

import threading

from riskflow.core.errors import UnknownVersion
from riskflow.core.models import FieldDefinition, SchemaVersion
from riskflow.observability import metrics
from riskflow.observability.logger import get_logger

from .evolution import SchemaEvolutionManager

logger = get_logger(__name__)


class SchemaRegistry:
    """
    Registry of published schema versions.

    Versions are numbered 1, 2, 3, ... and every publish is checked for
    compatibility with the latest version.
    """

    def __init__(self, evolution: SchemaEvolutionManager | None = None):
        """
        Initialize an empty schema registry.

        Args:
            evolution: Compatibility checker (default SchemaEvolutionManager)
        """
        self.evolution = evolution or SchemaEvolutionManager()
        self._versions: dict[int, SchemaVersion] = {}
        self._lock = threading.Lock()

    def publish(self, fields: list[FieldDefinition], description: str | None = None) -> SchemaVersion:
        """
        Publish a new schema version.

        Args:
            fields: Ordered field definitions of the new version
            description: Optional change note

        Returns:
            The published SchemaVersion

        Raises:
            SchemaConflict: If a field changes incompatibly with the prior version
        """
        with self._lock:
            current = self._versions[max(self._versions)] if self._versions else None

            if current is not None:
                changes = self.evolution.check_publishable(current.fields, fields)
                for name in changes["added_fields"]:
                    metrics.increment_counter(metrics.schema_evolution_total, 1, change_type="new_field")
                for _ in changes["type_changes"]:
                    metrics.increment_counter(metrics.schema_evolution_total, 1, change_type="type_change")

            version = SchemaVersion(
                version=(current.version + 1) if current else 1,
                fields=list(fields),
                description=description,
            )
            self._versions[version.version] = version

        logger.info(
            f"Published schema version {version.version}",
            extra={"schema_version": version.version, "field_count": len(version.fields)},
        )
        return version

    def resolve(self, version: int) -> SchemaVersion:
        """
        Get a schema by version number.

        Raises:
            UnknownVersion: If the version was never published
        """
        with self._lock:
            schema = self._versions.get(version)
        if schema is None:
            raise UnknownVersion("schema", version)
        return schema

    def latest(self) -> SchemaVersion:
        """
        Get the most recently published schema.

        Raises:
            UnknownVersion: If nothing has been published yet
        """
        with self._lock:
            if not self._versions:
                raise UnknownVersion("schema", "latest")
            return self._versions[max(self._versions)]

    def list_versions(self) -> list[SchemaVersion]:
        """List published versions, oldest first."""
        with self._lock:
            return [self._versions[v] for v in sorted(self._versions)]

    def detect_changes(self, old_version: int, new_version: int) -> dict:
        """Describe the changes between two published versions."""
        return self.evolution.detect_schema_changes(
            self.resolve(old_version).fields,
            self.resolve(new_version).fields,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._versions)
