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
Property-based tests for Add Machine schema synthesis.

These tests use Hypothesis to verify the validation rules produced for the
Add Machine form and the mapping of valid values to a creation command.

Properties tested:
- Unknown power types contribute no parameter fields
- The PXE MAC address is required unless the power type is IPMI
- Extra MAC addresses are validated entry by entry
- Values that pass the schema always map to a creation command
- Scalar base fields only accept string values
- The strict helper raises with the full validation result
"""

import string
from typing import Any, Dict, List

import pytest
from hypothesis import given, settings, assume, HealthCheck
from hypothesis import strategies as st

from maas_console.machines.errors import ValidationFailedError
from maas_console.machines.machine_config import (
    MAC_ADDRESS_PATTERN,
    ReferenceCollection,
    Domain,
    ResourcePool,
    Zone,
    validate_mac_address_format,
)
from maas_console.machines.power_types import PowerTypeRegistry
from maas_console.machines.submission import SubmissionMapper
from maas_console.machines.validators.machine_schema import (
    BASE_MACHINE_RULES,
    INVALID_MAC_MESSAGE,
    POWER_PARAMETERS_NAMESPACE,
    base_machine_rules,
    build_machine_schema,
)


POWER_TYPES = [
    {
        "name": "ipmi",
        "fields": [
            {
                "name": "power_driver",
                "label": "Power driver",
                "required": True,
                "field_type": "choice",
                "choices": [["LAN", "LAN [IPMI 1.5]"], ["LAN_2_0", "LAN_2_0 [IPMI 2.0]"]],
                "default": "LAN_2_0",
            },
            {"name": "power_address", "label": "IP address", "required": True},
            {"name": "power_user", "label": "Power user"},
            {
                "name": "mac_address",
                "label": "Power MAC",
                "field_type": "mac_address",
                "scope": "node",
            },
        ],
    },
    {"name": "manual", "fields": []},
    {
        "name": "virsh",
        "fields": [
            {"name": "power_address", "label": "Address", "required": True},
            {"name": "power_id", "label": "Virsh VM ID", "required": True, "scope": "node"},
        ],
    },
]

REGISTRY = PowerTypeRegistry.from_power_types(POWER_TYPES)

REFERENCE_SNAPSHOT = {
    "domains": ReferenceCollection(
        name="domains", items=(Domain(id=0, name="maas"),), loaded=True
    ),
    "resource_pools": ReferenceCollection(
        name="resource_pools", items=(ResourcePool(id=0, name="default"),), loaded=True
    ),
    "zones": ReferenceCollection(
        name="zones", items=(Zone(id=1, name="default"),), loaded=True
    ),
    "power_types": ReferenceCollection(
        name="power_types", items=tuple(REGISTRY.get(name) for name in REGISTRY.names()), loaded=True
    ),
}

# Parameter values satisfying every power type's required parameters
COMPLETE_POWER_PARAMETERS = {
    "power_driver": "LAN_2_0",
    "power_address": "10.0.0.10",
    "power_user": "admin",
    "mac_address": "",
    "power_id": "vm-1",
}


def _schema_for(power_type: str):
    return build_machine_schema(BASE_MACHINE_RULES, REGISTRY.fields_for(power_type), power_type)


def _values(**overrides: Any) -> Dict[str, Any]:
    values = {
        "architecture": "amd64",
        "domain": "maas",
        "extra_macs": [],
        "hostname": "",
        "min_hwe_kernel": "",
        "pool": "default",
        POWER_PARAMETERS_NAMESPACE: dict(COMPLETE_POWER_PARAMETERS),
        "power_type": "manual",
        "pxe_mac": "52:54:00:12:34:56",
        "zone": "default",
    }
    values.update(overrides)
    return values


# =============================================================================
# Hypothesis Strategies for generating test data
# =============================================================================


@st.composite
def valid_mac_addresses(draw) -> str:
    """Generate MAC addresses in six-octet colon-hex form, mixed case."""
    octets = draw(st.lists(
        st.text(alphabet="0123456789abcdefABCDEF", min_size=2, max_size=2),
        min_size=6,
        max_size=6,
    ))
    return ":".join(octets)


@st.composite
def invalid_mac_addresses(draw) -> str:
    """Generate non-empty strings that are not MAC addresses."""
    strategy = draw(st.sampled_from([
        # Too few octets
        st.just("AA:BB:CC:DD:EE"),
        # Too many octets
        st.just("AA:BB:CC:DD:EE:FF:00"),
        # Wrong separator
        st.just("AA-BB-CC-DD-EE-FF"),
        # Non-hex digit
        st.just("GG:BB:CC:DD:EE:FF"),
        # Single-digit octet
        st.just("A:BB:CC:DD:EE:FF"),
        # Trailing newline
        st.just("AA:BB:CC:DD:EE:FF\n"),
        st.just("not-a-mac"),
        # Random text
        st.text(min_size=1, max_size=20).filter(
            lambda s: not MAC_ADDRESS_PATTERN.fullmatch(s)
        ),
    ]))
    return draw(strategy)


@st.composite
def unknown_power_type_names(draw) -> str:
    """Generate power type names absent from the catalog."""
    name = draw(st.text(
        alphabet=string.ascii_letters + string.digits + "-_",
        min_size=1,
        max_size=20,
    ))
    assume(name not in REGISTRY.names())
    return name


# =============================================================================
# Unknown power types contribute no parameter fields
# =============================================================================


class TestUnknownPowerTypes:
    """
    *For any* power type name not in the catalog, the registry SHALL return
    no fields and the synthesized schema SHALL have no parameter rules.
    """

    @given(name=unknown_power_type_names())
    @settings(max_examples=100)
    def test_unknown_power_type_has_no_fields(self, name: str):
        assert REGISTRY.fields_for(name) == ()
        assert REGISTRY.get(name) is None

    @given(name=unknown_power_type_names())
    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    def test_unknown_power_type_schema_has_no_nested_rules(self, name: str):
        schema = _schema_for(name)

        assert schema.nested_rules == ()
        assert schema.variant_name == name
        assert schema.validate(_values(power_type=name, power_parameters={})).is_valid

    def test_empty_power_type_name_has_no_fields(self):
        assert REGISTRY.fields_for("") == ()
        assert REGISTRY.fields_for(None) == ()

    def test_empty_power_type_fails_required_rule_only(self):
        schema = _schema_for("")
        result = schema.validate(_values(power_type=""))

        assert not result.is_valid
        assert result.errors_by_field() == {"power_type": "Power type required"}


# =============================================================================
# The PXE MAC address is required unless the power type is IPMI
# =============================================================================


class TestConditionalPxeMac:
    """
    *For any* value of ``pxe_mac``, the schema SHALL require it to be present
    and valid unless the selected power type is IPMI, in which case absence
    is accepted.
    """

    @given(power_type=st.sampled_from(["manual", "virsh"]))
    @settings(max_examples=20)
    def test_missing_pxe_mac_rejected_for_non_ipmi(self, power_type: str):
        result = _schema_for(power_type).validate(_values(power_type=power_type, pxe_mac=""))

        assert not result.is_valid
        assert result.errors_by_field()["pxe_mac"] == "At least one MAC address required"

    def test_missing_pxe_mac_accepted_for_ipmi(self):
        result = _schema_for("ipmi").validate(_values(power_type="ipmi", pxe_mac=""))

        assert result.is_valid, result.errors

    def test_absent_pxe_mac_key_accepted_for_ipmi(self):
        values = _values(power_type="ipmi")
        del values["pxe_mac"]

        assert _schema_for("ipmi").validate(values).is_valid

    @given(
        mac=valid_mac_addresses(),
        power_type=st.sampled_from(["ipmi", "manual", "virsh"]),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_valid_pxe_mac_accepted(self, mac: str, power_type: str):
        result = _schema_for(power_type).validate(_values(power_type=power_type, pxe_mac=mac))

        assert "pxe_mac" not in result.errors_by_field()

    @given(
        mac=invalid_mac_addresses(),
        power_type=st.sampled_from(["ipmi", "manual", "virsh"]),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_invalid_pxe_mac_rejected(self, mac: str, power_type: str):
        result = _schema_for(power_type).validate(_values(power_type=power_type, pxe_mac=mac))

        assert result.errors_by_field()["pxe_mac"] == INVALID_MAC_MESSAGE

    def test_ipmi_sentinel_is_configurable(self):
        rules = base_machine_rules(ipmi_power_type="redfish")
        schema = build_machine_schema(rules, (), "redfish")

        assert schema.validate(_values(power_type="redfish", pxe_mac="")).is_valid
        assert not build_machine_schema(rules, (), "ipmi").validate(
            _values(power_type="ipmi", pxe_mac="", power_parameters={})
        ).is_valid


# =============================================================================
# Extra MAC addresses are validated entry by entry
# =============================================================================


class TestExtraMacsPerEntry:
    """
    *For any* list of extra MAC addresses, each entry SHALL be validated on
    its own: errors are reported exactly at the invalid entries.
    """

    @given(entries=st.lists(
        st.one_of(valid_mac_addresses(), invalid_mac_addresses()),
        max_size=6,
    ))
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_errors_reported_at_invalid_entries(self, entries: List[str]):
        result = _schema_for("manual").validate(_values(extra_macs=entries))

        expected = {
            f"extra_macs.{i}"
            for i, entry in enumerate(entries)
            if not validate_mac_address_format(entry)
        }
        reported = {error.field for error in result.errors}
        assert reported == expected
        assert all(error.message == INVALID_MAC_MESSAGE for error in result.errors)

    def test_one_invalid_entry_among_valid_ones(self):
        result = _schema_for("manual").validate(
            _values(extra_macs=["AA:BB:CC:DD:EE:FF", "not-a-mac"])
        )

        assert not result.is_valid
        assert len(result.errors) == 1
        assert result.errors[0].field == "extra_macs.1"
        assert result.errors[0].message == "Invalid MAC address"

    def test_empty_entries_are_not_errors(self):
        result = _schema_for("manual").validate(
            _values(extra_macs=["", "AA:BB:CC:DD:EE:FF", ""])
        )

        assert result.is_valid

    def test_missing_extra_macs_treated_as_empty(self):
        assert _schema_for("manual").validate(_values(extra_macs=None)).is_valid


# =============================================================================
# Power type parameter rules
# =============================================================================


class TestPowerParameterRules:
    """Parameter fields of the selected power type are validated in their namespace."""

    def test_required_parameter_reported_in_namespace(self):
        parameters = dict(COMPLETE_POWER_PARAMETERS, power_address="")
        result = _schema_for("ipmi").validate(
            _values(power_type="ipmi", power_parameters=parameters)
        )

        assert result.errors_by_field() == {
            "power_parameters.power_address": "IP address required"
        }

    def test_parameters_of_other_power_types_are_ignored(self):
        parameters = dict(COMPLETE_POWER_PARAMETERS, power_id="")
        result = _schema_for("ipmi").validate(
            _values(power_type="ipmi", power_parameters=parameters)
        )

        assert result.is_valid

    def test_invalid_choice_rejected(self):
        parameters = dict(COMPLETE_POWER_PARAMETERS, power_driver="SERIAL")
        result = _schema_for("ipmi").validate(
            _values(power_type="ipmi", power_parameters=parameters)
        )

        assert "power_parameters.power_driver" in result.errors_by_field()

    @given(mac=invalid_mac_addresses())
    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    def test_invalid_mac_parameter_rejected(self, mac: str):
        parameters = dict(COMPLETE_POWER_PARAMETERS, mac_address=mac)
        result = _schema_for("ipmi").validate(
            _values(power_type="ipmi", power_parameters=parameters)
        )

        assert result.errors_by_field() == {
            "power_parameters.mac_address": INVALID_MAC_MESSAGE
        }

    def test_rebuild_is_deterministic(self):
        first = _schema_for("virsh")
        second = _schema_for("virsh")

        assert first.rules == second.rules
        assert first.nested_rules == second.nested_rules
        assert [rule.name for rule in first.nested_rules] == ["power_address", "power_id"]


# =============================================================================
# Base form fields only accept text values
# =============================================================================


STRING_FIELDS = [rule.name for rule in BASE_MACHINE_RULES if rule.string_only]


@st.composite
def non_string_values(draw) -> Any:
    """Generate non-empty values that are not strings."""
    return draw(st.one_of(
        st.integers(),
        st.booleans(),
        st.floats(allow_nan=False),
        st.lists(st.text(min_size=1, max_size=5), min_size=1, max_size=3),
        st.dictionaries(st.text(min_size=1, max_size=5), st.text(), min_size=1, max_size=2),
    ))


class TestScalarFieldTypes:
    """
    *For any* non-string value in a scalar base field, validation SHALL
    report a type error on that field alone.
    """

    @given(field_name=st.sampled_from(STRING_FIELDS), value=non_string_values())
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_non_string_value_rejected(self, field_name: str, value: Any):
        result = _schema_for("manual").validate(_values(**{field_name: value}))

        assert result.errors_by_field() == {field_name: "Input should be a valid string"}
        assert result.errors[0].error_type == "string_type"

    def test_list_fields_are_not_string_only(self):
        assert "extra_macs" not in STRING_FIELDS
        assert set(STRING_FIELDS) == {
            "architecture",
            "domain",
            "hostname",
            "min_hwe_kernel",
            "pool",
            "power_type",
            "pxe_mac",
            "zone",
        }


class TestValidateOrRaise:
    """The strict validation helper raises with the full result attached."""

    def test_valid_values_returned(self):
        values = _schema_for("manual").validate_or_raise(_values())

        assert values["architecture"] == "amd64"
        assert values["power_type"] == "manual"

    def test_invalid_values_raise_with_result(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            _schema_for("virsh").validate_or_raise(
                _values(power_type="virsh", pxe_mac="", power_parameters={})
            )

        result = exc_info.value.result
        assert not result.is_valid
        assert result.errors_by_field() == {
            "pxe_mac": "At least one MAC address required",
            "power_parameters.power_address": "Address required",
            "power_parameters.power_id": "Virsh VM ID required",
        }
        assert "Machine validation failed" in str(exc_info.value)


# =============================================================================
# Values that pass the schema always map to a creation command
# =============================================================================


@st.composite
def schema_passing_values(draw) -> Dict[str, Any]:
    """Generate form values that satisfy the schema of their power type."""
    power_type = draw(st.sampled_from(["ipmi", "manual", "virsh"]))
    pxe_mac = draw(valid_mac_addresses())
    if power_type == "ipmi":
        pxe_mac = draw(st.sampled_from(["", pxe_mac]))
    extra_macs = draw(st.lists(
        st.one_of(valid_mac_addresses(), st.just("")),
        max_size=4,
    ))
    hostname = draw(st.text(
        alphabet=string.ascii_lowercase + string.digits + "-",
        max_size=20,
    ))
    return _values(
        power_type=power_type,
        pxe_mac=pxe_mac,
        extra_macs=extra_macs,
        hostname=hostname,
    )


class TestSubmissionRoundTrip:
    """
    *For any* values that pass the schema against a known reference set,
    mapping them to a creation command SHALL NOT raise.
    """

    @given(values=schema_passing_values())
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_schema_passing_values_map_to_command(self, values: Dict[str, Any]):
        result = _schema_for(values["power_type"]).validate(values)
        assert result.is_valid, result.errors

        command = SubmissionMapper().to_command(
            result.values, REFERENCE_SNAPSHOT, values["power_type"]
        )

        assert command.power_type == values["power_type"]
        assert command.extra_macs == [mac for mac in values["extra_macs"] if mac]
        assert set(command.power_parameters) == {
            field.name for field in REGISTRY.fields_for(values["power_type"])
        }
