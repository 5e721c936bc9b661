"""
Schema field configuration.

Loads field definitions from YAML files and provides a builder for
defining schemas in code.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from riskflow.core.models import FieldDefinition, FieldRule


class SchemaConfigLoader:
    """
    Loads schema field definitions from YAML configuration files.

    Expected YAML format:
    ```yaml
    schema:
      description: Loan tape v1
      fields:
        principal_balance:
          type: double
          required: true
          rule:
            min: 0
        effective_date:
          type: date
          required: true
        termination_date:
          type: date
          rule:
            on_or_after: effective_date
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the schema config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Schema configuration file not found: {config_path}")

    def load_fields(self) -> list[FieldDefinition]:
        """
        Load and parse field definitions from the YAML file.

        Raises:
            ValueError: If YAML is invalid or missing required sections
        """
        with open(self.config_path) as f:
            config = yaml.safe_load(f)

        if not config or "schema" not in config:
            raise ValueError("Configuration file must contain 'schema' section")

        return parse_fields(config["schema"].get("fields"))

    def load_description(self) -> str | None:
        with open(self.config_path) as f:
            config = yaml.safe_load(f) or {}
        return (config.get("schema") or {}).get("description")


def parse_fields(field_section: Any) -> list[FieldDefinition]:
    """
    Parse a ``fields`` mapping (name -> definition) into FieldDefinitions.

    Raises:
        ValueError: If a definition is malformed
    """
    if not isinstance(field_section, dict) or not field_section:
        raise ValueError("Schema 'fields' must be a non-empty mapping")

    fields = []
    for field_name, field_def in field_section.items():
        field_def = field_def or {}
        if not isinstance(field_def, dict):
            raise ValueError(f"Definition for field '{field_name}' must be a mapping")
        try:
            fields.append(
                FieldDefinition(
                    name=field_name,
                    required=field_def.get("required", False),
                    type=field_def.get("type", "string"),
                    rule=FieldRule(**(field_def.get("rule") or {})),
                )
            )
        except PydanticValidationError as e:
            raise ValueError(f"Invalid definition for field '{field_name}': {e}") from e
    return fields


class SchemaBuilder:
    """
    Programmatically build schema field lists (for testing or dynamic schemas).
    """

    def __init__(self):
        """Initialize empty field list."""
        self.fields: list[FieldDefinition] = []

    def add_field(
        self,
        name: str,
        field_type: str = "string",
        required: bool = False,
        **rule: Any,
    ) -> "SchemaBuilder":
        """Add a field with optional rule constraints (min, max, pattern, ...)."""
        self.fields.append(
            FieldDefinition(name=name, required=required, type=field_type, rule=FieldRule(**rule))
        )
        return self

    def add_required(self, name: str, field_type: str = "string", **rule: Any) -> "SchemaBuilder":
        """Add a required field."""
        return self.add_field(name, field_type, required=True, **rule)

    def build(self) -> list[FieldDefinition]:
        """Build and return the field definitions."""
        return list(self.fields)
