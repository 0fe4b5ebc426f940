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
Configuration for the Add Machine form core.

Settings are read from a YAML file and validated with pydantic. When no path
is given, the file named by the ``MAAS_CONSOLE_CONFIG`` environment variable
is used if set; otherwise the built-in defaults apply.
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

CONFIG_ENV_VAR = "MAAS_CONSOLE_CONFIG"

DEFAULT_REQUIRED_COLLECTIONS = [
    "architectures",
    "default_min_hwe_kernel",
    "domains",
    "hwe_kernels",
    "power_types",
    "resource_pools",
    "zones",
]

POWER_PARAMETER_SCOPES = {"node", "bmc"}


class SettingsError(Exception):
    """Exception raised when the settings file cannot be read or is invalid."""

    pass


class FormSettings(BaseModel):
    """Settings that shape the Add Machine form behaviour."""

    model_config = ConfigDict(extra="forbid")

    ipmi_power_type: str = Field(
        default="ipmi",
        min_length=1,
        description="Power type for which the PXE MAC address is optional",
    )
    saved_redirect: str = Field(
        default="/machines",
        min_length=1,
        description="Path to navigate to after a plain save",
    )
    default_machine_label: str = Field(
        default="Machine",
        min_length=1,
        description="Label used in the success message when no hostname is set",
    )
    power_parameter_scope: str = Field(
        default="node",
        description="Scope used when formatting power parameters (node or bmc)",
    )
    required_collections: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REQUIRED_COLLECTIONS),
        min_length=1,
        description="Reference collections that must load before the form opens",
    )

    @field_validator("power_parameter_scope")
    @classmethod
    def validate_power_parameter_scope(cls, v: str) -> str:
        """Validate that the scope is a known power parameter scope."""
        if v not in POWER_PARAMETER_SCOPES:
            raise ValueError(
                f"Invalid power parameter scope: '{v}'. "
                f"Expected one of: {sorted(POWER_PARAMETER_SCOPES)}"
            )
        return v


def load_settings(path: Optional[str] = None) -> FormSettings:
    """
    Load form settings from a YAML file.

    Args:
        path: Path to the settings file. If None, the ``MAAS_CONSOLE_CONFIG``
            environment variable is consulted; without it, defaults are used.

    Returns:
        The validated FormSettings.

    Raises:
        SettingsError: If the file is missing, is not valid YAML, or does
            not match the settings schema.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
        if not path:
            return FormSettings()

    settings_file = Path(path)
    if not settings_file.exists():
        raise SettingsError(f"Settings file not found: {path}")

    try:
        with open(settings_file, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in settings file: {e}")

    if not isinstance(data, dict):
        raise SettingsError(f"Settings file must contain a mapping: {path}")

    try:
        return FormSettings(**data)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise SettingsError(f"Invalid settings in {path}: {details}")
