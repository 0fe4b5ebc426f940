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
Controller for the Add Machine form.

The controller gates the form on the reference data, keeps the validation
schema in step with the selected power type, and drives the submit
lifecycle::

    LOADING -> READY -> SUBMITTING -> SAVED
                 ^           |
                 |           v
                 +------- FAILED

A successful "save and add another" returns to READY with fresh values
instead of stopping at SAVED. All transitions happen on the event loop
thread; each handler runs to completion before the next event is handled.
"""

import asyncio
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from maas_console.machines.errors import (
    ErrorInfo,
    FormDismissedError,
    FormNotReadyError,
    ReferenceLookupError,
    SingleError,
    SubmissionError,
    TransportError,
    format_error_info,
)
from maas_console.machines.machine_config import ReferenceCollection
from maas_console.machines.power_types import PowerTypeRegistry
from maas_console.machines.reference_data import ReferenceDataLoader
from maas_console.machines.submission import SubmissionMapper
from maas_console.machines.validators.machine_schema import (
    POWER_PARAMETERS_NAMESPACE,
    ValidationResult,
    ValidationSchema,
    base_machine_rules,
    build_machine_schema,
)
from maas_console.settings import FormSettings
from maas_console.utils import setup_logger

logger = setup_logger(__name__)


class FormStatus(str, Enum):
    """Lifecycle states of the Add Machine form."""

    LOADING = "Loading"
    READY = "Ready"
    SUBMITTING = "Submitting"
    SAVED = "Saved"
    FAILED = "Failed"


class SubmissionStatus(str, Enum):
    """Outcome of the most recent submission."""

    IDLE = "Idle"
    SAVING = "Saving"
    SAVED = "Saved"
    FAILED = "Failed"


@dataclass
class FormState:
    """Values and submission bookkeeping owned by the form controller."""

    values: Dict[str, Any] = field(default_factory=dict)
    active_variant: str = ""
    submission_status: SubmissionStatus = SubmissionStatus.IDLE
    last_error: Optional[ErrorInfo] = None
    reset_on_save: bool = False


class MachineEndpoint(Protocol):
    """Inventory endpoint that creates machines."""

    async def create(self, request: Dict[str, Any]) -> Dict[str, Any]:
        ...


class Notifier(Protocol):
    """Messaging collaborator that shows success and failure notifications."""

    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class LoggingNotifier:
    """Notifier that writes notifications to the module logger."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.error(message)


class AddMachineForm:
    """
    Controller of the Add Machine form.

    Args:
        loader: Loader of the reference collections the form depends on.
        endpoint: Inventory endpoint that receives the creation request.
        notifier: Receives success and failure notifications.
        navigate_to: Called with the redirect path after a plain save and
            on cancel.
        settings: Form settings; defaults apply when omitted.
        mapper: Builds the creation command from validated values.
    """

    def __init__(
        self,
        loader: ReferenceDataLoader,
        endpoint: MachineEndpoint,
        notifier: Optional[Notifier] = None,
        navigate_to: Optional[Callable[[str], None]] = None,
        settings: Optional[FormSettings] = None,
        mapper: Optional[SubmissionMapper] = None,
    ):
        self._settings = settings or FormSettings()
        self._loader = loader
        self._endpoint = endpoint
        self._notifier = notifier or LoggingNotifier()
        self._navigate_to = navigate_to
        self._mapper = mapper or SubmissionMapper(self._settings.power_parameter_scope)

        self._status = FormStatus.LOADING
        self._form_state = FormState()
        self._field_errors: Dict[str, str] = {}
        self._registry = PowerTypeRegistry()
        self._base_rules = base_machine_rules(self._settings.ipmi_power_type)
        self._schema = build_machine_schema(self._base_rules, ())
        self._activated = False
        self._dismissed = False

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def status(self) -> FormStatus:
        return self._status

    @property
    def form_state(self) -> FormState:
        """A copy of the current form state."""
        return copy.deepcopy(self._form_state)

    @property
    def values(self) -> Dict[str, Any]:
        return copy.deepcopy(self._form_state.values)

    @property
    def schema(self) -> ValidationSchema:
        """The validation schema for the selected power type."""
        return self._schema

    @property
    def registry(self) -> PowerTypeRegistry:
        return self._registry

    @property
    def errors(self) -> Dict[str, str]:
        """Field-level errors of the last submit attempt."""
        return dict(self._field_errors)

    @property
    def error_message(self) -> str:
        """The banner error of the last submit attempt, or an empty string."""
        return format_error_info(self._form_state.last_error)

    @property
    def dismissed(self) -> bool:
        return self._dismissed

    def is_ready(self) -> bool:
        """Return True once every reference collection has loaded."""
        return self._status is not FormStatus.LOADING

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def activate(self) -> None:
        """
        Start loading the reference data.

        Must be called from a running event loop. Activating twice does not
        issue duplicate fetches.

        Raises:
            FormDismissedError: If the form has been dismissed.
        """
        self._ensure_not_dismissed()
        if not self._activated:
            self._loader.add_listener(self._on_collection_settled)
            self._activated = True
        self._loader.load()
        self._refresh_readiness()

    def initial_values(self) -> Dict[str, Any]:
        """
        Default values of a fresh form.

        Each selector defaults to the first item of its reference collection,
        or to an empty value when the collection is empty.
        """
        snapshot = self._loader.snapshot()
        architecture = _first_item(snapshot, "architectures")
        domain = _first_item(snapshot, "domains")
        pool = _first_item(snapshot, "resource_pools")
        zone = _first_item(snapshot, "zones")
        return {
            "architecture": architecture or "",
            "domain": domain.name if domain is not None else "",
            "extra_macs": [],
            "hostname": "",
            "min_hwe_kernel": _first_item(snapshot, "default_min_hwe_kernel") or "",
            "pool": pool.name if pool is not None else "",
            POWER_PARAMETERS_NAMESPACE: self._registry.all_power_parameters(),
            "power_type": "",
            "pxe_mac": "",
            "zone": zone.name if zone is not None else "",
        }

    def _on_collection_settled(self, name: str, collection: ReferenceCollection) -> None:
        if self._dismissed:
            return
        if not collection.loaded:
            logger.debug(f"Form still loading: '{name}' failed ({collection.error})")
        self._refresh_readiness()

    def _refresh_readiness(self) -> None:
        if self._status is not FormStatus.LOADING or not self._loader.is_ready():
            return

        power_types = self._loader.snapshot().get("power_types")
        self._registry = PowerTypeRegistry.from_power_types(
            power_types.items if power_types is not None else ()
        )
        self._form_state = FormState(values=self.initial_values())
        self._rebuild_schema("")
        self._status = FormStatus.READY
        logger.info("Add machine form ready")

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def set_value(self, name: str, value: Any) -> None:
        """
        Set one form value.

        Changing ``power_type`` rebuilds the validation schema before this
        method returns.

        Raises:
            FormNotReadyError: If the form is loading or submitting.
            FormDismissedError: If the form has been dismissed.
        """
        self._ensure_editable()
        if name == "power_type":
            self.set_power_type(value)
            return
        self._form_state.values[name] = copy.deepcopy(value)
        self._field_errors.pop(name, None)
        self._leave_failed()

    def set_values(self, values: Mapping[str, Any]) -> None:
        """Set several form values at once."""
        for name, value in values.items():
            self.set_value(name, value)

    def set_power_type(self, power_type: Optional[str]) -> None:
        """
        Select a power type and rebuild the schema for it.

        Raises:
            FormNotReadyError: If the form is loading or submitting.
            FormDismissedError: If the form has been dismissed.
        """
        self._ensure_editable()
        power_type = power_type or ""
        self._form_state.values["power_type"] = power_type
        self._field_errors.pop("power_type", None)
        self._rebuild_schema(power_type)
        self._leave_failed()

    def _rebuild_schema(self, power_type: str) -> None:
        self._form_state.active_variant = power_type
        self._schema = build_machine_schema(
            self._base_rules,
            self._registry.fields_for(power_type),
            power_type,
        )

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit(
        self,
        values: Optional[Mapping[str, Any]] = None,
        reset_on_save: bool = False,
    ) -> ValidationResult:
        """
        Validate, map and dispatch the form values.

        Args:
            values: Values to merge into the form before submitting.
            reset_on_save: "Save and add another": on success, reopen the
                form with fresh values instead of navigating away. Applies
                to this submission only.

        Returns:
            The ValidationResult of this attempt. When it is invalid, nothing
            was dispatched and the form stays READY.

        Raises:
            FormNotReadyError: If the form is loading or already submitting.
            FormDismissedError: If the form has been dismissed.
        """
        self._ensure_editable()
        if values is not None:
            self.set_values(values)
        self._leave_failed()

        current = self._form_state.values
        if self._schema.variant_name != (current.get("power_type") or ""):
            self._rebuild_schema(current.get("power_type") or "")

        result = self._schema.validate(current)
        if not result.is_valid:
            self._field_errors = result.errors_by_field()
            self._form_state.last_error = None
            logger.info(f"Machine values failed validation: {sorted(self._field_errors)}")
            return result

        try:
            command = self._mapper.to_command(
                result.values,
                self._loader.snapshot(),
                self._form_state.active_variant,
            )
        except ReferenceLookupError as e:
            result.add_error(
                field=e.field_name,
                message=str(e),
                error_type="reference_not_found",
            )
            self._field_errors = result.errors_by_field()
            self._form_state.last_error = SingleError(message=str(e))
            return result

        self._field_errors = {}
        self._form_state.last_error = None
        self._form_state.reset_on_save = reset_on_save
        self._form_state.submission_status = SubmissionStatus.SAVING
        self._status = FormStatus.SUBMITTING

        label = command.hostname or self._settings.default_machine_label
        logger.info(f"Submitting machine '{label}' (power type: {command.power_type})")

        try:
            await self._endpoint.create(command.to_create_request())
        except SubmissionError as e:
            self._on_failed(e.error_info)
        except (OSError, asyncio.TimeoutError) as e:
            self._on_failed(TransportError(str(e) or type(e).__name__).error_info)
        except asyncio.CancelledError:
            self._on_cancelled()
            raise
        except Exception as e:
            logger.exception("Unexpected error while dispatching the machine")
            self._on_failed(TransportError(str(e) or type(e).__name__).error_info)
        else:
            self._on_saved(label, reset_on_save)
        return result

    def _on_saved(self, label: str, reset_on_save: bool) -> None:
        if self._dismissed:
            logger.debug(f"Ignoring save of '{label}' after the form was dismissed")
            return

        self._notifier.success(f"{label} added successfully.")
        if reset_on_save:
            self._form_state = FormState(
                values=self.initial_values(),
                submission_status=SubmissionStatus.SAVED,
            )
            self._rebuild_schema("")
            self._status = FormStatus.READY
            return

        self._form_state.submission_status = SubmissionStatus.SAVED
        self._status = FormStatus.SAVED
        self._loader.remove_listener(self._on_collection_settled)
        self._navigate(self._settings.saved_redirect)

    def _on_cancelled(self) -> None:
        if self._dismissed:
            return
        self._form_state.submission_status = SubmissionStatus.IDLE
        self._status = FormStatus.READY
        logger.warning("Machine submission was cancelled")

    def _on_failed(self, error_info: ErrorInfo) -> None:
        if self._dismissed:
            logger.debug("Ignoring submission failure after the form was dismissed")
            return

        self._form_state.last_error = error_info
        self._form_state.submission_status = SubmissionStatus.FAILED
        self._status = FormStatus.FAILED
        message = format_error_info(error_info)
        logger.error(f"Failed to add machine: {message}")
        self._notifier.error(message)

    # -------------------------------------------------------------------------
    # Leaving the form
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Leave the form without submitting."""
        self._ensure_not_dismissed()
        self.dismiss()
        self._navigate(self._settings.saved_redirect)

    def dismiss(self) -> None:
        """
        Discard the form.

        Responses to a submission still in flight are ignored once the form
        is dismissed.
        """
        if self._dismissed:
            return
        self._dismissed = True
        self._loader.remove_listener(self._on_collection_settled)
        self._form_state = FormState()
        self._field_errors = {}
        logger.debug("Add machine form dismissed")

    def _navigate(self, path: str) -> None:
        if self._navigate_to is None:
            logger.debug(f"No navigation handler; not navigating to {path}")
            return
        self._navigate_to(path)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def _ensure_not_dismissed(self) -> None:
        if self._dismissed:
            raise FormDismissedError("The add machine form has been dismissed")

    def _ensure_editable(self) -> None:
        self._ensure_not_dismissed()
        if self._status not in (FormStatus.READY, FormStatus.FAILED):
            raise FormNotReadyError(
                f"The add machine form cannot be edited while {self._status.value.lower()}"
            )

    def _leave_failed(self) -> None:
        if self._status is FormStatus.FAILED:
            self._status = FormStatus.READY


def _first_item(snapshot: Mapping[str, ReferenceCollection], name: str) -> Any:
    collection = snapshot.get(name)
    if collection is None or not collection.items:
        return None
    return collection.items[0]
