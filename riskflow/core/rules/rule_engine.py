"""
Rule engine applying a schema version's field rules to a single record.

The engine is built once per schema version and is a pure function of one
record, so records can be checked in parallel.
"""

from typing import Any

from riskflow.core.models import FieldDefinition, RawRecord, SchemaVersion, Violation
from riskflow.core.validators import (
    AllowedValuesValidator,
    BaseValidator,
    RangeValidator,
    RegexValidator,
    RequiredFieldValidator,
    TemporalValidator,
    TypeValidator,
    ValidationError,
    is_blank,
)


class FieldRules:
    """Validators for one field, in evaluation order."""

    def __init__(self, definition: FieldDefinition):
        self.definition = definition
        self.required = RequiredFieldValidator(definition.name) if definition.required else None
        self.type_check = TypeValidator(definition.name, {"expected_type": definition.type})
        self.value_checks: list[BaseValidator] = []
        self.temporal: TemporalValidator | None = None

        rule = definition.rule
        if rule.min is not None or rule.max is not None:
            self.value_checks.append(RangeValidator(definition.name, {"min": rule.min, "max": rule.max}))
        if rule.pattern:
            self.value_checks.append(RegexValidator(definition.name, {"pattern": rule.pattern}))
        if rule.allowed:
            self.value_checks.append(AllowedValuesValidator(definition.name, {"allowed": rule.allowed}))

        temporal_params = {
            "not_before": rule.not_before,
            "not_after": rule.not_after,
            "not_after_timestamp": rule.not_after_timestamp,
            "on_or_after": rule.on_or_after,
        }
        if any(temporal_params.values()):
            self.temporal = TemporalValidator(definition.name, temporal_params)


class RuleEngine:
    """
    Applies every field rule of a schema version to a record.

    Loads rules from the schema's field definitions and collects all
    violations instead of stopping at the first one.
    """

    def __init__(self, schema: SchemaVersion):
        """
        Initialize the rule engine for a schema version.

        Args:
            schema: The schema version whose rules to apply
        """
        self.schema = schema
        self.field_rules = [FieldRules(definition) for definition in schema.fields]
        self._check_cross_field_references()

    def _check_cross_field_references(self) -> None:
        names = set(self.schema.field_names)
        for rules in self.field_rules:
            other = rules.definition.rule.on_or_after
            if other and other not in names:
                raise ValueError(
                    f"Field '{rules.definition.name}' references unknown field '{other}'"
                )

    def validate_record(self, record: RawRecord) -> tuple[dict[str, Any], list[Violation]]:
        """
        Validate a record against all field rules.

        Args:
            record: The RawRecord to validate

        Returns:
            Tuple of (typed values, violations); the record is valid only
            when the violation list is empty
        """
        payload = record.fields
        typed: dict[str, Any] = {}
        violations: list[Violation] = []
        parsed_ok: set[str] = set()

        # Completeness, type and value rules per field
        for rules in self.field_rules:
            name = rules.definition.name
            value = payload.get(name)

            if is_blank(value):
                if rules.required is not None:
                    try:
                        rules.required.validate(value, payload, record.timestamp)
                    except ValidationError as e:
                        violations.append(e.to_violation())
                continue

            try:
                value = rules.type_check.validate(value, payload, record.timestamp)
                for check in rules.value_checks:
                    check.validate(value, payload, record.timestamp)
            except ValidationError as e:
                violations.append(e.to_violation())
                continue

            typed[name] = value
            parsed_ok.add(name)

        # Temporal rules need every referenced field parsed first
        for rules in self.field_rules:
            if rules.temporal is None or rules.definition.name not in parsed_ok:
                continue
            try:
                rules.temporal.validate(typed[rules.definition.name], typed, record.timestamp)
            except ValidationError as e:
                violations.append(e.to_violation())

        return typed, violations

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of loaded rules.

        Returns:
            Dictionary with rule counts by type
        """
        counts: dict[str, int] = {}
        for rules in self.field_rules:
            validators: list[BaseValidator] = [rules.type_check, *rules.value_checks]
            if rules.required is not None:
                validators.append(rules.required)
            if rules.temporal is not None:
                validators.append(rules.temporal)
            for validator in validators:
                counts[validator.rule_type] = counts.get(validator.rule_type, 0) + 1
        return {
            "schema_version": self.schema.version,
            "total_rules": sum(counts.values()),
            "rules_by_type": counts,
        }
