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
"""Mapping of validated Add Machine form values to a creation command."""

from typing import Any, Dict, Mapping, Optional

from maas_console.machines.errors import ReferenceLookupError
from maas_console.machines.machine_config import MachineCreateCommand, ReferenceCollection
from maas_console.machines.power_types import PowerTypeRegistry, format_power_parameters
from maas_console.machines.validators.machine_schema import POWER_PARAMETERS_NAMESPACE
from maas_console.utils import setup_logger

logger = setup_logger(__name__)

# Form field -> (reference collection, label used in messages)
REFERENCED_FIELDS = {
    "domain": ("domains", "domain"),
    "pool": ("resource_pools", "resource pool"),
    "zone": ("zones", "zone"),
}


class SubmissionMapper:
    """
    Builds ``MachineCreateCommand`` objects from validated form values.

    Args:
        power_parameter_scope: Scope passed to the power parameter formatter.
    """

    def __init__(self, power_parameter_scope: str = "node"):
        self._power_parameter_scope = power_parameter_scope

    def to_command(
        self,
        values: Mapping[str, Any],
        reference_snapshot: Mapping[str, ReferenceCollection],
        variant_name: Optional[str],
    ) -> MachineCreateCommand:
        """
        Build the creation command for one submit attempt.

        Args:
            values: Form values that passed schema validation.
            reference_snapshot: Loaded reference collections keyed by name.
            variant_name: The selected power type.

        Returns:
            The MachineCreateCommand to dispatch.

        Raises:
            ReferenceLookupError: If the domain, pool or zone named in
                ``values`` is not in the reference snapshot.
        """
        references: Dict[str, Any] = {}
        for field_name, (collection_name, label) in REFERENCED_FIELDS.items():
            name = values.get(field_name, "")
            collection = reference_snapshot.get(collection_name)
            record = collection.find_by_name(name) if collection is not None else None
            if record is None:
                logger.warning(
                    f"Selected {label} '{name}' is not in the loaded '{collection_name}'"
                )
                raise ReferenceLookupError(field_name, name, label=label)
            references[field_name] = record

        power_types = reference_snapshot.get("power_types")
        registry = PowerTypeRegistry.from_power_types(
            power_types.items if power_types is not None else ()
        )
        power_parameters = format_power_parameters(
            registry.get(variant_name),
            values.get(POWER_PARAMETERS_NAMESPACE) or {},
            self._power_parameter_scope,
        )

        return MachineCreateCommand(
            architecture=str(values.get("architecture") or ""),
            domain=references["domain"],
            extra_macs=[mac for mac in values.get("extra_macs") or [] if mac],
            hostname=str(values.get("hostname") or ""),
            min_hwe_kernel=str(values.get("min_hwe_kernel") or ""),
            pool=references["pool"],
            power_parameters=power_parameters,
            power_type=str(values.get("power_type") or ""),
            pxe_mac=values.get("pxe_mac") or "",
            zone=references["zone"],
        )
