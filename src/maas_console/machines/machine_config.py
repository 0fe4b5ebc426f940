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
Pydantic models for the Add Machine form.

This module defines the reference records the form selects from (domains,
resource pools, zones), the power type catalog that drives the
power-parameter fields, and the creation command sent to the inventory
endpoint.
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Six-octet colon-hex hardware address, hex digits case-insensitive
MAC_ADDRESS_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}:){5}([0-9A-Fa-f]{2})$")


class PowerFieldType(str, Enum):
    """Input kinds a power parameter can declare."""

    STRING = "string"
    MAC_ADDRESS = "mac_address"
    CHOICE = "choice"
    MULTIPLE_CHOICE = "multiple_choice"
    PASSWORD = "password"


class PowerFieldScope(str, Enum):
    """Whether a power parameter belongs to the BMC or to the node."""

    BMC = "bmc"
    NODE = "node"


class ReferenceRecord(BaseModel):
    """A named backend entity that the form references by name."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int = Field(..., description="Backend identifier")
    name: str = Field(..., min_length=1, description="Unique display name")
    description: str = Field(default="", description="Free-form description")


class Domain(ReferenceRecord):
    """DNS domain a machine is registered in."""

    is_default: bool = Field(default=False, description="Whether this is the default domain")


class ResourcePool(ReferenceRecord):
    """Resource pool a machine is allocated from."""

    pass


class Zone(ReferenceRecord):
    """Availability zone a machine belongs to."""

    pass


class PowerField(BaseModel):
    """One parameter of a power type, as published by the power type catalog."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(..., min_length=1, description="Parameter name")
    label: str = Field(default="", description="Human readable label")
    required: bool = Field(default=False, description="Whether a value must be given")
    field_type: PowerFieldType = Field(
        default=PowerFieldType.STRING,
        description="Input kind of the parameter",
    )
    choices: Tuple[Tuple[str, str], ...] = Field(
        default=(),
        description="Allowed (value, label) pairs for choice parameters",
    )
    default: Any = Field(default="", description="Default value")
    scope: PowerFieldScope = Field(
        default=PowerFieldScope.BMC,
        description="Whether the parameter belongs to the BMC or the node",
    )

    @field_validator("field_type", mode="before")
    @classmethod
    def coerce_unknown_field_type(cls, v: Any) -> Any:
        """Treat field types this client does not know as plain strings."""
        known = {field_type.value for field_type in PowerFieldType}
        if isinstance(v, str) and v not in known:
            return PowerFieldType.STRING
        return v

    @field_validator("default", mode="before")
    @classmethod
    def coerce_missing_default(cls, v: Any) -> Any:
        """Use an empty string when the catalog publishes no default."""
        return "" if v is None else v

    @property
    def display_label(self) -> str:
        """Label to use in messages, falling back to the parameter name."""
        return self.label or self.name

    @property
    def choice_values(self) -> Tuple[str, ...]:
        """The values accepted by a choice parameter."""
        return tuple(value for value, _ in self.choices)


class PowerType(BaseModel):
    """A power driver and the parameters it needs."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(..., min_length=1, description="Power type name, e.g. ipmi")
    description: str = Field(default="", description="Human readable description")
    fields: Tuple[PowerField, ...] = Field(
        default=(),
        description="Parameters of this power type, in display order",
    )
    can_probe: bool = Field(default=False, description="Whether the driver can probe")


class ReferenceCollection(BaseModel):
    """A named, fully loaded snapshot of backend records."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Collection name")
    items: Tuple[Any, ...] = Field(default=(), description="Records in backend order")
    loaded: bool = Field(default=False, description="Whether the last fetch succeeded")
    error: Optional[str] = Field(default=None, description="Last fetch failure, if any")

    def find_by_name(self, name: str) -> Optional[Any]:
        """Return the first record whose ``name`` matches, or None."""
        for item in self.items:
            if getattr(item, "name", None) == name:
                return item
        return None


class MachineCreateCommand(BaseModel):
    """
    The structured command that registers a new machine.

    Built once per submit attempt from validated form values and discarded
    after dispatch.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    architecture: str = Field(..., min_length=1, description="Machine architecture")
    domain: Domain = Field(..., description="Domain to register the machine in")
    extra_macs: List[str] = Field(
        default_factory=list,
        description="Additional MAC addresses of the machine",
    )
    hostname: str = Field(default="", description="Hostname; generated by the backend if empty")
    min_hwe_kernel: str = Field(default="", description="Minimum kernel for deployment")
    pool: ResourcePool = Field(..., description="Resource pool of the machine")
    power_parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Power parameters shaped for the selected power type",
    )
    power_type: str = Field(..., min_length=1, description="Power type name")
    pxe_mac: str = Field(default="", description="MAC address the machine boots from")
    zone: Zone = Field(..., description="Availability zone of the machine")

    @field_validator("extra_macs")
    @classmethod
    def validate_extra_macs(cls, v: List[str]) -> List[str]:
        """Validate that every extra MAC address has valid format."""
        for mac in v:
            if not MAC_ADDRESS_PATTERN.fullmatch(mac):
                raise ValueError(
                    f"Invalid MAC address format: '{mac}'. "
                    "Expected format: XX:XX:XX:XX:XX:XX"
                )
        return v

    @field_validator("pxe_mac")
    @classmethod
    def validate_pxe_mac(cls, v: str) -> str:
        """Validate the PXE MAC address format when one is given."""
        if v and not MAC_ADDRESS_PATTERN.fullmatch(v):
            raise ValueError(
                f"Invalid MAC address format: '{v}'. "
                "Expected format: XX:XX:XX:XX:XX:XX"
            )
        return v

    def to_create_request(self) -> Dict[str, Any]:
        """
        Convert the command to the parameters of the machine create call.

        Returns:
            Dict containing the parameters for the create call. Empty
            ``hostname`` and ``pxe_mac`` values are left out so the backend
            applies its own defaults.
        """
        request: Dict[str, Any] = {
            "architecture": self.architecture,
            "domain": self.domain.model_dump(),
            "extra_macs": list(self.extra_macs),
            "min_hwe_kernel": self.min_hwe_kernel,
            "pool": self.pool.model_dump(),
            "power_parameters": dict(self.power_parameters),
            "power_type": self.power_type,
            "zone": self.zone.model_dump(),
        }

        if self.hostname:
            request["hostname"] = self.hostname

        if self.pxe_mac:
            request["pxe_mac"] = self.pxe_mac

        return request


def validate_mac_address_format(mac: str) -> bool:
    """
    Validate that a string is a six-octet colon-hex MAC address.

    Args:
        mac: The string to validate.

    Returns:
        True if the string matches the MAC address pattern, False otherwise.
    """
    return bool(MAC_ADDRESS_PATTERN.fullmatch(mac))
