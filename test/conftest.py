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
"""Shared fixtures for the Add Machine form tests."""

import asyncio
import copy
from typing import Any, Dict, List

import pytest


IPMI_POWER_TYPE = {
    "name": "ipmi",
    "description": "IPMI",
    "can_probe": False,
    "fields": [
        {
            "name": "power_driver",
            "label": "Power driver",
            "required": True,
            "field_type": "choice",
            "choices": [["LAN", "LAN [IPMI 1.5]"], ["LAN_2_0", "LAN_2_0 [IPMI 2.0]"]],
            "default": "LAN_2_0",
            "scope": "bmc",
        },
        {
            "name": "power_address",
            "label": "IP address",
            "required": True,
            "field_type": "string",
            "default": "",
            "scope": "bmc",
        },
        {
            "name": "power_user",
            "label": "Power user",
            "required": False,
            "field_type": "string",
            "default": "",
            "scope": "bmc",
        },
        {
            "name": "power_pass",
            "label": "Power password",
            "required": False,
            "field_type": "password",
            "default": "",
            "scope": "bmc",
        },
        {
            "name": "mac_address",
            "label": "Power MAC",
            "required": False,
            "field_type": "mac_address",
            "default": "",
            "scope": "node",
        },
    ],
}

MANUAL_POWER_TYPE = {
    "name": "manual",
    "description": "Manual",
    "can_probe": False,
    "fields": [],
}

VIRSH_POWER_TYPE = {
    "name": "virsh",
    "description": "Virsh (virtual systems)",
    "can_probe": True,
    "fields": [
        {
            "name": "power_address",
            "label": "Address",
            "required": True,
            "field_type": "string",
            "default": "",
            "scope": "bmc",
        },
        {
            "name": "power_pass",
            "label": "Password (optional)",
            "required": False,
            "field_type": "password",
            "default": "",
            "scope": "bmc",
        },
        {
            "name": "power_id",
            "label": "Virsh VM ID",
            "required": True,
            "field_type": "string",
            "default": "",
            "scope": "node",
        },
    ],
}

SAMPLE_INVENTORY: Dict[str, Any] = {
    "architectures": ["amd64"],
    "default_min_hwe_kernel": "ga-20.04",
    "domains": [{"id": 0, "name": "maas", "is_default": True}],
    "hwe_kernels": [["ga-20.04", "focal (ga-20.04)"]],
    "power_types": [IPMI_POWER_TYPE, MANUAL_POWER_TYPE, VIRSH_POWER_TYPE],
    "resource_pools": [{"id": 0, "name": "default", "description": "Default pool"}],
    "zones": [{"id": 1, "name": "default"}],
}


class InMemoryStore:
    """Reference store serving an inventory mapping and counting fetches."""

    def __init__(self, inventory: Dict[str, Any], failing: Any = ()):
        self.inventory = inventory
        self.failing = set(failing)
        self.calls: List[str] = []

    async def fetch(self, collection_name: str) -> Any:
        self.calls.append(collection_name)
        await asyncio.sleep(0)
        if collection_name in self.failing:
            raise ConnectionError(f"{collection_name} unavailable")
        return copy.deepcopy(self.inventory[collection_name])


class GatedStore:
    """Reference store whose fetches complete only when released by the test."""

    def __init__(self, inventory: Dict[str, Any]):
        self.inventory = inventory
        self.calls: List[str] = []
        self._gates: Dict[str, asyncio.Future] = {}

    def _gate(self, collection_name: str) -> asyncio.Future:
        if collection_name not in self._gates:
            self._gates[collection_name] = asyncio.get_running_loop().create_future()
        return self._gates[collection_name]

    async def fetch(self, collection_name: str) -> Any:
        self.calls.append(collection_name)
        await self._gate(collection_name)
        return copy.deepcopy(self.inventory[collection_name])

    def release(self, collection_name: str) -> None:
        gate = self._gate(collection_name)
        if not gate.done():
            gate.set_result(None)

    def release_all(self) -> None:
        for collection_name in self.inventory:
            self.release(collection_name)


class RecordingNotifier:
    """Notifier that keeps the messages it was given."""

    def __init__(self):
        self.successes: List[str] = []
        self.errors: List[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


@pytest.fixture
def inventory() -> Dict[str, Any]:
    """A fresh copy of the sample inventory."""
    return copy.deepcopy(SAMPLE_INVENTORY)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_store(inventory):
    """Factory for in-memory stores; ``failing`` names collections that fail."""

    def _make(failing=()):
        return InMemoryStore(inventory, failing)

    return _make


@pytest.fixture
def gated_store(inventory) -> GatedStore:
    return GatedStore(inventory)
