"""
Schema evolution compatibility checks.

New schema versions are additive: fields may be added, types may only widen,
and fields already required by in-flight batches may never be dropped.
"""

from typing import Any

from riskflow.core.errors import SchemaConflict
from riskflow.core.models import FieldDefinition
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)


class SchemaEvolutionManager:
    """
    Detects changes between two field lists and rejects breaking ones.

    Handles:
    - Added fields (always compatible)
    - Type compatibility checking
    - Required-ness changes
    """

    # Compatible type transitions (old_type -> new_type)
    COMPATIBLE_TYPE_TRANSITIONS = {
        ("integer", "double"),
        ("date", "timestamp"),
    }

    def is_compatible_type_change(self, old_type: str, new_type: str) -> bool:
        """
        Check if a type change is compatible.

        Args:
            old_type: Original declared type
            new_type: New declared type

        Returns:
            True if values valid under the old type stay valid under the new one
        """
        if old_type == new_type:
            return True
        return (old_type, new_type) in self.COMPATIBLE_TYPE_TRANSITIONS

    def detect_schema_changes(
        self,
        old_fields: list[FieldDefinition],
        new_fields: list[FieldDefinition],
    ) -> dict[str, Any]:
        """
        Detect all changes between two field lists.

        Args:
            old_fields: Fields of the prior version
            new_fields: Fields of the candidate version

        Returns:
            Dictionary with detected changes
        """
        changes: dict[str, Any] = {
            "added_fields": [],
            "removed_fields": [],
            "type_changes": [],
            "requirement_changes": [],
            "has_breaking_changes": False,
        }

        old_by_name = {f.name: f for f in old_fields}
        new_by_name = {f.name: f for f in new_fields}

        for name in new_by_name:
            if name not in old_by_name:
                changes["added_fields"].append(name)

        for name, old_field in old_by_name.items():
            if name not in new_by_name:
                changes["removed_fields"].append(name)
                # Dropping a required field breaks batches that rely on it
                if old_field.required:
                    changes["has_breaking_changes"] = True
                continue

            new_field = new_by_name[name]

            if old_field.type != new_field.type:
                compatible = self.is_compatible_type_change(old_field.type, new_field.type)
                changes["type_changes"].append({
                    "field": name,
                    "old_type": old_field.type,
                    "new_type": new_field.type,
                    "compatible": compatible,
                })
                if not compatible:
                    changes["has_breaking_changes"] = True

            if old_field.required != new_field.required:
                changes["requirement_changes"].append({
                    "field": name,
                    "old_required": old_field.required,
                    "new_required": new_field.required,
                })
                # Optional -> required would invalidate records already accepted
                if new_field.required:
                    changes["has_breaking_changes"] = True

        # Added required fields are allowed: older batches keep their own version
        return changes

    def check_publishable(
        self,
        old_fields: list[FieldDefinition],
        new_fields: list[FieldDefinition],
    ) -> dict[str, Any]:
        """
        Raise SchemaConflict when the candidate fields break the prior version.

        Returns:
            The detected changes when the candidate is compatible
        """
        changes = self.detect_schema_changes(old_fields, new_fields)

        if changes["has_breaking_changes"]:
            logger.error(f"Breaking schema changes detected: {changes}")
            raise SchemaConflict(
                "Incompatible schema change: "
                + "; ".join(self._describe_breaking(changes, old_fields)),
                changes=changes,
            )

        for name in changes["removed_fields"]:
            logger.warning(f"Schema evolution: optional field '{name}' dropped")

        return changes

    def _describe_breaking(self, changes: dict[str, Any], old_fields: list[FieldDefinition]) -> list[str]:
        required_before = {f.name for f in old_fields if f.required}
        reasons = []
        for name in changes["removed_fields"]:
            if name in required_before:
                reasons.append(f"required field '{name}' removed")
        for change in changes["type_changes"]:
            if not change["compatible"]:
                reasons.append(
                    f"field '{change['field']}' type {change['old_type']} -> {change['new_type']}"
                )
        for change in changes["requirement_changes"]:
            if change["new_required"]:
                reasons.append(f"field '{change['field']}' became required")
        return reasons
