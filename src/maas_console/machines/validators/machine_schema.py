# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License"). You
# may not use this file except in compliance with the License. A copy of
# the License is located at
#
#     http://aws.amazon.com/apache2.0/
#
# or in the "license" file accompanying this file. This file is
# distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF
# ANY KIND, either express or implied. See the License for the specific
# language governing permissions and limitations under the License.
"""
Validation schema synthesis for the Add Machine form.

A schema is derived from two inputs: the static base rules of the form and
the parameter fields of the currently selected power type. Rules are plain
data (``FieldRule``), including the conditional "required unless the power
type is IPMI" rule, and are compiled into pydantic models so that every
failure is reported against the field (or list entry) that caused it.

The schema is rebuilt whenever the selected power type changes; it is never
mutated in place.
"""

from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple, Type

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, create_model, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from maas_console.machines.errors import ValidationFailedError
from maas_console.machines.machine_config import MAC_ADDRESS_PATTERN, PowerField, PowerFieldType
from maas_console.utils import setup_logger

logger = setup_logger(__name__)

# Nested region of the schema holding the power type's parameters
POWER_PARAMETERS_NAMESPACE = "power_parameters"

DEFAULT_IPMI_POWER_TYPE = "ipmi"

INVALID_MAC_MESSAGE = "Invalid MAC address"


@dataclass
class ValidationError:
    """
    Represents a validation error with field name and error message.

    Attributes:
        field: Dotted path of the field that failed validation; list entries
            are addressed by index, e.g. ``extra_macs.1``.
        message: A human-readable error message describing the failure.
        error_type: The type/category of the validation error.
    """
    field: str
    message: str
    error_type: str = "validation_error"

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass
class ValidationResult:
    """
    Result of validating form values against a schema.

    Attributes:
        is_valid: True if validation passed, False otherwise.
        errors: List of validation errors if validation failed.
        values: The validated values; empty when validation failed.
    """
    is_valid: bool = True
    errors: List[ValidationError] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)

    def add_error(self, field: str, message: str, error_type: str = "validation_error") -> None:
        """Add a validation error to the result."""
        self.errors.append(ValidationError(field=field, message=message, error_type=error_type))
        self.is_valid = False

    def errors_by_field(self) -> Dict[str, str]:
        """Map each failing field path to its first error message."""
        by_field: Dict[str, str] = {}
        for error in self.errors:
            by_field.setdefault(error.field, error.message)
        return by_field

    def __str__(self) -> str:
        return get_validation_errors_summary(self)


@dataclass(frozen=True)
class RequiredUnless:
    """Conditional requirement: required unless ``field`` equals ``value``."""

    field: str
    value: str


@dataclass(frozen=True)
class FieldRule:
    """
    Declarative validation rule for one form field.

    Attributes:
        name: Field name.
        required: Whether a non-empty value must be given.
        required_message: Message reported when a required value is missing.
        required_unless: Optional condition that replaces ``required``.
        pattern: Regex a non-empty value must match.
        pattern_message: Message reported when the pattern does not match.
        many: The field holds a list; ``pattern`` applies to each entry.
        choices: Allowed values; empty means unrestricted.
        string_only: A non-empty value must be a string.
    """

    name: str
    required: bool = False
    required_message: str = ""
    required_unless: Optional[RequiredUnless] = None
    pattern: Optional[Pattern[str]] = None
    pattern_message: str = "Invalid value"
    many: bool = False
    choices: Tuple[str, ...] = ()
    string_only: bool = False

    def is_required(self, values: Mapping[str, Any]) -> bool:
        """Resolve whether the field is required given the other values."""
        if self.required_unless is not None:
            return values.get(self.required_unless.field) != self.required_unless.value
        return self.required


def base_machine_rules(ipmi_power_type: str = DEFAULT_IPMI_POWER_TYPE) -> Tuple[FieldRule, ...]:
    """
    Return the static rules of the Add Machine form.

    Args:
        ipmi_power_type: Power type for which the PXE MAC address is optional.
    """
    return (
        FieldRule(
            "architecture",
            required=True,
            required_message="Architecture required",
            string_only=True,
        ),
        FieldRule("domain", required=True, required_message="Domain required", string_only=True),
        FieldRule(
            "extra_macs",
            many=True,
            pattern=MAC_ADDRESS_PATTERN,
            pattern_message=INVALID_MAC_MESSAGE,
        ),
        FieldRule("hostname", string_only=True),
        FieldRule("min_hwe_kernel", string_only=True),
        FieldRule(
            "pool",
            required=True,
            required_message="Resource pool required",
            string_only=True,
        ),
        FieldRule(
            "power_type",
            required=True,
            required_message="Power type required",
            string_only=True,
        ),
        FieldRule(
            "pxe_mac",
            required_message="At least one MAC address required",
            required_unless=RequiredUnless(field="power_type", value=ipmi_power_type),
            pattern=MAC_ADDRESS_PATTERN,
            pattern_message=INVALID_MAC_MESSAGE,
            string_only=True,
        ),
        FieldRule("zone", required=True, required_message="Zone required", string_only=True),
    )


BASE_MACHINE_RULES = base_machine_rules()


def power_field_rule(power_field: PowerField) -> FieldRule:
    """Translate one power type parameter into a validation rule."""
    pattern = None
    if power_field.field_type == PowerFieldType.MAC_ADDRESS:
        pattern = MAC_ADDRESS_PATTERN
    choices: Tuple[str, ...] = ()
    if power_field.field_type in (PowerFieldType.CHOICE, PowerFieldType.MULTIPLE_CHOICE):
        choices = power_field.choice_values
    return FieldRule(
        power_field.name,
        required=power_field.required,
        required_message=f"{power_field.display_label} required",
        pattern=pattern,
        pattern_message=INVALID_MAC_MESSAGE if pattern is not None else "Invalid value",
        many=power_field.field_type == PowerFieldType.MULTIPLE_CHOICE,
        choices=choices,
    )


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == ()


def _check_entry(rule: FieldRule, value: Any) -> Any:
    """Check a single non-empty value against the rule's pattern and choices."""
    if _is_empty(value):
        return value
    if rule.pattern is not None and not rule.pattern.fullmatch(str(value)):
        raise PydanticCustomError("invalid_format", rule.pattern_message)
    if rule.choices and str(value) not in rule.choices:
        raise PydanticCustomError(
            "invalid_choice",
            "{value} is not a valid choice",
            {"value": value},
        )
    return value


def _entry_validator(rule: FieldRule) -> Callable[[Any], Any]:
    def check_entry(value: Any) -> Any:
        return _check_entry(rule, value)

    return check_entry


def _value_validator(rule: FieldRule) -> Callable[..., Any]:
    def check_value(cls, value: Any, info: ValidationInfo) -> Any:
        values = (info.context or {}).get("values", {})
        if _is_empty(value):
            if rule.is_required(values):
                raise PydanticCustomError("required", rule.required_message)
            return value
        if rule.many:
            return value
        if rule.string_only and not isinstance(value, str):
            raise PydanticCustomError("string_type", "Input should be a valid string")
        return _check_entry(rule, value)

    return check_value


def _compile_model(
    model_name: str,
    rules: Iterable[FieldRule],
    nested: Optional[Tuple[str, Type[BaseModel]]] = None,
) -> Type[BaseModel]:
    """Compile rules into a pydantic model with one validator per rule."""
    fields: Dict[str, Any] = {}
    validators: Dict[str, Any] = {}

    for rule in rules:
        if rule.many:
            entry_type = Annotated[Any, AfterValidator(_entry_validator(rule))]
            fields[rule.name] = (
                List[entry_type],
                Field(default_factory=list, validate_default=True),
            )
        else:
            fields[rule.name] = (Any, Field(default="", validate_default=True))
        validators[f"check_{rule.name}"] = field_validator(rule.name)(_value_validator(rule))

    if nested is not None:
        nested_name, nested_model = nested
        fields[nested_name] = (
            nested_model,
            Field(default_factory=dict, validate_default=True),
        )

    return create_model(
        model_name,
        __config__=ConfigDict(extra="allow"),
        __validators__=validators,
        **fields,
    )


class ValidationSchema:
    """
    A compiled validation schema for one power type.

    Instances are immutable: a power type change produces a new schema via
    ``build_machine_schema``.
    """

    def __init__(
        self,
        rules: Tuple[FieldRule, ...],
        nested_rules: Tuple[FieldRule, ...],
        variant_name: str = "",
        namespace: str = POWER_PARAMETERS_NAMESPACE,
    ):
        self._rules = rules
        self._nested_rules = nested_rules
        self._variant_name = variant_name
        self._namespace = namespace

        nested_model = _compile_model("PowerParameters", nested_rules)
        self._model = _compile_model(
            "MachineFormValues",
            rules,
            nested=(namespace, nested_model),
        )

    @property
    def rules(self) -> Tuple[FieldRule, ...]:
        return self._rules

    @property
    def nested_rules(self) -> Tuple[FieldRule, ...]:
        return self._nested_rules

    @property
    def variant_name(self) -> str:
        """The power type this schema was built for."""
        return self._variant_name

    @property
    def namespace(self) -> str:
        return self._namespace

    def rule(self, name: str) -> Optional[FieldRule]:
        """Return a top-level or nested rule by field name."""
        for rule in self._rules:
            if rule.name == name:
                return rule
        for rule in self._nested_rules:
            if rule.name == name:
                return rule
        return None

    def validate(self, values: Mapping[str, Any]) -> ValidationResult:
        """
        Validate form values against the schema.

        Every failure is reported at its own field path; one invalid entry
        never hides errors on other fields or entries.

        Args:
            values: The flat form values, with power parameters nested under
                the schema namespace.

        Returns:
            ValidationResult containing validation status, any errors, and
            the validated values.
        """
        result = ValidationResult()
        prepared = dict(values)
        for rule in self._rules:
            if rule.many and prepared.get(rule.name) is None:
                prepared[rule.name] = []
        if prepared.get(self._namespace) is None:
            prepared[self._namespace] = {}

        try:
            model = self._model.model_validate(prepared, context={"values": prepared})
        except PydanticValidationError as e:
            for error in e.errors():
                field_path = ".".join(str(loc) for loc in error["loc"])
                result.add_error(
                    field=field_path,
                    message=error["msg"],
                    error_type=error["type"],
                )
            logger.debug(
                f"Validation against '{self._variant_name or 'no power type'}' "
                f"schema failed with {len(result.errors)} error(s)"
            )
            return result

        result.values = model.model_dump()
        return result

    def validate_or_raise(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Validate form values and return the validated values.

        Raises:
            ValidationFailedError: If any rule fails.
        """
        result = self.validate(values)
        if not result.is_valid:
            raise ValidationFailedError(result)
        return result.values


def build_machine_schema(
    base_rules: Iterable[FieldRule],
    variant_fields: Iterable[PowerField],
    variant_name: str = "",
    namespace: str = POWER_PARAMETERS_NAMESPACE,
) -> ValidationSchema:
    """
    Combine the base rules with the selected power type's parameter rules.

    Deterministic and total: an empty or unknown power type (no fields)
    yields a schema with no nested rules.

    Args:
        base_rules: Static rules of the form.
        variant_fields: Parameter fields of the selected power type.
        variant_name: Name of the selected power type.
        namespace: Key of the nested region holding the power parameters.

    Returns:
        The compiled ValidationSchema.
    """
    nested_rules = tuple(power_field_rule(power_field) for power_field in variant_fields)
    logger.debug(
        f"Building machine schema for power type '{variant_name}' "
        f"with {len(nested_rules)} parameter rule(s)"
    )
    return ValidationSchema(
        rules=tuple(base_rules),
        nested_rules=nested_rules,
        variant_name=variant_name or "",
        namespace=namespace,
    )


def get_validation_errors_summary(result: ValidationResult) -> str:
    """
    Get a human-readable summary of validation errors.

    Args:
        result: The ValidationResult to summarize.

    Returns:
        A formatted string containing all validation errors.
    """
    if result.is_valid:
        return "Machine values are valid."

    lines = ["Machine validation failed with the following errors:"]
    for error in result.errors:
        lines.append(f"  - {error.field}: {error.message}")

    return "\n".join(lines)
