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
"""Registry of power types and the parameters each of them needs."""

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from maas_console.machines.machine_config import PowerField, PowerFieldScope, PowerType

# Power parameter scopes kept when formatting for each target
FORMAT_SCOPES: Dict[str, Tuple[PowerFieldScope, ...]] = {
    "node": (PowerFieldScope.BMC, PowerFieldScope.NODE),
    "bmc": (PowerFieldScope.BMC,),
}


class PowerTypeRegistry:
    """
    Lookup of power-parameter field definitions by power type name.

    Built from the loaded power type catalog. The registry performs no I/O;
    an unknown or empty power type name simply has no fields.
    """

    def __init__(self, power_types: Iterable[PowerType] = ()):
        self._power_types: Dict[str, PowerType] = {}
        for power_type in power_types:
            self._power_types.setdefault(power_type.name, power_type)

    @classmethod
    def from_power_types(cls, power_types: Iterable[Any]) -> "PowerTypeRegistry":
        """Build a registry from PowerType models or raw catalog dicts."""
        return cls(
            power_type if isinstance(power_type, PowerType) else PowerType.model_validate(power_type)
            for power_type in power_types
        )

    def names(self) -> Tuple[str, ...]:
        return tuple(self._power_types)

    def get(self, name: Optional[str]) -> Optional[PowerType]:
        if not name:
            return None
        return self._power_types.get(name)

    def fields_for(self, name: Optional[str]) -> Tuple[PowerField, ...]:
        """Return the parameter fields of a power type, or () if it is unknown."""
        power_type = self.get(name)
        if power_type is None:
            return ()
        return power_type.fields

    def all_power_parameters(self) -> Dict[str, Any]:
        """
        Return every parameter of every power type mapped to its default.

        The first power type declaring a parameter name provides its default.
        """
        parameters: Dict[str, Any] = {}
        for power_type in self._power_types.values():
            for power_field in power_type.fields:
                parameters.setdefault(power_field.name, power_field.default)
        return parameters


def format_power_parameters(
    power_type: Optional[PowerType],
    parameters: Optional[Mapping[str, Any]],
    scope: str = "node",
) -> Dict[str, Any]:
    """
    Shape power parameters for the selected power type.

    Args:
        power_type: The selected power type, or None if unknown.
        parameters: The nested power parameter values from the form.
        scope: ``"node"`` keeps BMC and node parameters, ``"bmc"`` keeps only
            BMC parameters.

    Returns:
        Parameters belonging to the power type, in field order. Missing
        values fall back to the field default.

    Raises:
        ValueError: If the scope is not a known formatting scope.
    """
    if scope not in FORMAT_SCOPES:
        raise ValueError(
            f"Invalid power parameter scope: '{scope}'. "
            f"Expected one of: {sorted(FORMAT_SCOPES)}"
        )
    if power_type is None:
        return {}

    parameters = parameters or {}
    scopes = FORMAT_SCOPES[scope]
    formatted: Dict[str, Any] = {}
    for power_field in power_type.fields:
        if power_field.scope not in scopes:
            continue
        value = parameters.get(power_field.name)
        formatted[power_field.name] = power_field.default if value is None else value
    return formatted
