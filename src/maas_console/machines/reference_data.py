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
Loading of the reference collections the Add Machine form depends on.

Every required collection is fetched by its own asyncio task. A collection's
``items``/``loaded`` pair is only ever written by the completion of its own
fetch, so collections resolve independently and one failing fetch never
affects the others. The form opens once every required collection is loaded.
"""

import asyncio
from collections.abc import Iterable as IterableABC
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from maas_console.machines.machine_config import (
    Domain,
    PowerType,
    ReferenceCollection,
    ResourcePool,
    Zone,
)
from maas_console.settings import DEFAULT_REQUIRED_COLLECTIONS
from maas_console.utils import setup_logger

logger = setup_logger(__name__)

# Record models for collections whose items are structured entities
COLLECTION_RECORD_MODELS = {
    "domains": Domain,
    "power_types": PowerType,
    "resource_pools": ResourcePool,
    "zones": Zone,
}


class ReferenceStore(Protocol):
    """Backend data store the reference collections are fetched from."""

    async def fetch(self, collection_name: str) -> Any:
        ...


CollectionListener = Callable[[str, ReferenceCollection], None]


def _coerce_items(collection_name: str, raw: Any) -> Tuple[Any, ...]:
    """
    Convert a raw fetch result into the items of a collection.

    Scalar results (such as the default kernel) become a one-item collection,
    or an empty one when the value is empty. Records of structured
    collections are validated into their pydantic models.

    Raises:
        pydantic.ValidationError: If a record does not match its model.
    """
    if raw is None:
        return ()
    if isinstance(raw, (str, bytes)) or not isinstance(raw, IterableABC):
        return (raw,) if raw else ()

    model = COLLECTION_RECORD_MODELS.get(collection_name)
    if model is None:
        return tuple(raw)
    return tuple(
        item if isinstance(item, model) else model.model_validate(item)
        for item in raw
    )


class ReferenceDataLoader:
    """
    Fetches and caches the named reference collections.

    ``load()`` may be called any number of times: a collection whose fetch is
    still pending, or which is already loaded, is not fetched again.
    """

    def __init__(
        self,
        store: ReferenceStore,
        required_collections: Optional[Iterable[str]] = None,
    ):
        self._store = store
        self._required: Tuple[str, ...] = tuple(
            required_collections or DEFAULT_REQUIRED_COLLECTIONS
        )
        self._collections: Dict[str, ReferenceCollection] = {
            name: ReferenceCollection(name=name) for name in self._required
        }
        self._pending: Dict[str, "asyncio.Task[None]"] = {}
        self._listeners: List[CollectionListener] = []

    @property
    def required_collections(self) -> Tuple[str, ...]:
        return self._required

    @property
    def pending_collections(self) -> Tuple[str, ...]:
        """Names of the collections whose fetch is in flight."""
        return tuple(self._pending)

    def add_listener(self, listener: CollectionListener) -> None:
        """Register a callback run after each collection fetch settles."""
        self._listeners.append(listener)

    def remove_listener(self, listener: CollectionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def load(self) -> None:
        """
        Issue one fetch per required collection.

        Must be called from a running event loop. Collections that are
        loaded or already being fetched are skipped.
        """
        for name in self._required:
            self._start_fetch(name)

    def retry(self, collection_name: str) -> None:
        """
        Re-issue the fetch of a single collection.

        Args:
            collection_name: Name of a required collection.

        Raises:
            KeyError: If the collection is not one this loader manages.
        """
        if collection_name not in self._collections:
            raise KeyError(f"Unknown reference collection: '{collection_name}'")
        self._start_fetch(collection_name)

    def is_ready(self) -> bool:
        """Return True only when every required collection is loaded."""
        return all(self._collections[name].loaded for name in self._required)

    def snapshot(self) -> Dict[str, ReferenceCollection]:
        """Return the current collections keyed by name."""
        return dict(self._collections)

    def collection(self, collection_name: str) -> ReferenceCollection:
        return self._collections[collection_name]

    async def wait(self) -> None:
        """Wait until no fetch is in flight. Fetch failures are not raised."""
        while self._pending:
            await asyncio.gather(*self._pending.values(), return_exceptions=True)

    def _start_fetch(self, collection_name: str) -> None:
        if collection_name in self._pending:
            logger.debug(f"Fetch of '{collection_name}' already pending, skipping")
            return
        if self._collections[collection_name].loaded:
            return

        logger.debug(f"Fetching reference collection: {collection_name}")
        loop = asyncio.get_running_loop()
        self._pending[collection_name] = loop.create_task(
            self._fetch(collection_name)
        )

    async def _fetch(self, collection_name: str) -> None:
        previous = self._collections[collection_name]
        try:
            raw = await self._store.fetch(collection_name)
            items = _coerce_items(collection_name, raw)
        except asyncio.CancelledError:
            self._pending.pop(collection_name, None)
            raise
        except Exception as e:
            logger.warning(f"Failed to load reference collection '{collection_name}': {e}")
            self._collections[collection_name] = ReferenceCollection(
                name=collection_name,
                items=previous.items,
                loaded=False,
                error=str(e),
            )
        else:
            logger.debug(f"Loaded {len(items)} items for '{collection_name}'")
            self._collections[collection_name] = ReferenceCollection(
                name=collection_name,
                items=items,
                loaded=True,
            )
        self._pending.pop(collection_name, None)

        for listener in list(self._listeners):
            listener(collection_name, self._collections[collection_name])
