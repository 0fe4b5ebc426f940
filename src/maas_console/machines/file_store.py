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
File-backed collaborators for running the Add Machine form offline.

``YamlReferenceStore`` serves reference collections from an inventory YAML
file whose top-level keys are collection names. ``DryRunEndpoint`` accepts
creation requests without sending them anywhere and keeps them for
inspection.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List

import yaml

from maas_console.machines.errors import ReferenceDataError
from maas_console.utils import setup_logger

logger = setup_logger(__name__)


def load_inventory_file(path: str) -> Dict[str, Any]:
    """
    Load an inventory YAML file.

    Args:
        path: Path to the inventory file.

    Returns:
        Dictionary mapping collection names to their records.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid YAML or not a mapping.
    """
    inventory_file = Path(path)
    if not inventory_file.exists():
        raise FileNotFoundError(f"Inventory file not found: {path}")

    try:
        with open(inventory_file, "r") as f:
            inventory = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in inventory file: {e}")

    if not isinstance(inventory, dict):
        raise ValueError(f"Inventory file must contain a mapping: {path}")
    return inventory


class YamlReferenceStore:
    """Reference store serving collections from an inventory mapping."""

    def __init__(self, inventory: Dict[str, Any]):
        self._inventory = inventory

    @classmethod
    def from_file(cls, path: str) -> "YamlReferenceStore":
        return cls(load_inventory_file(path))

    async def fetch(self, collection_name: str) -> Any:
        # Yield so fetches resolve as independent loop events
        await asyncio.sleep(0)
        if collection_name not in self._inventory:
            raise ReferenceDataError(collection_name, "not present in the inventory file")
        return self._inventory[collection_name]


class DryRunEndpoint:
    """Machine endpoint that records creation requests instead of sending them."""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []

    async def create(self, request: Dict[str, Any]) -> Dict[str, Any]:
        await asyncio.sleep(0)
        self.requests.append(request)
        system_id = f"dry-run-{len(self.requests)}"
        logger.debug(f"Recorded creation request {system_id}")
        return {"system_id": system_id, "hostname": request.get("hostname", "")}
