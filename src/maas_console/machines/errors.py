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
Errors raised while preparing and submitting a new machine.

Remote rejections arrive either as a single message or as a mapping of
field name to message(s). Both shapes are carried by ``ErrorInfo`` and
rendered into one banner string by ``format_error_info``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union


@dataclass(frozen=True)
class SingleError:
    """A rejection carrying one message."""

    message: str


@dataclass(frozen=True)
class FieldErrors:
    """A rejection carrying messages keyed by field name."""

    errors: Dict[str, Any] = field(default_factory=dict)


ErrorInfo = Union[SingleError, FieldErrors]


def error_info_from_payload(payload: Any) -> Optional[ErrorInfo]:
    """
    Build an ErrorInfo from a raw failure payload.

    Args:
        payload: A message string, a mapping of field name to message(s),
            or None.

    Returns:
        The matching ErrorInfo variant, or None for an empty payload.
    """
    if payload is None or payload == "" or payload == {}:
        return None
    if isinstance(payload, Mapping):
        return FieldErrors(errors=dict(payload))
    return SingleError(message=str(payload))


def format_error_info(error_info: Optional[ErrorInfo]) -> str:
    """
    Render an ErrorInfo as the single string shown in the form banner.

    A single message is returned verbatim. For per-field errors every
    message is followed by a space, in mapping order; list values are
    joined with ", ".
    """
    if error_info is None:
        return ""
    if isinstance(error_info, SingleError):
        return error_info.message

    errors = ""
    for message in error_info.errors.values():
        if isinstance(message, (list, tuple)):
            message = ", ".join(str(part) for part in message)
        errors += f"{message} "
    return errors


class MachineFormError(Exception):
    """Base exception for Add Machine form operations."""

    pass


class FormNotReadyError(MachineFormError):
    """Exception raised when the form is used in a state that does not allow it."""

    pass


class FormDismissedError(MachineFormError):
    """Exception raised when a dismissed form is used again."""

    pass


class ReferenceDataError(MachineFormError):
    """Exception raised when a reference collection fails to load."""

    def __init__(self, collection: str, message: str):
        super().__init__(f"Failed to load '{collection}': {message}")
        self.collection = collection


class ValidationFailedError(MachineFormError):
    """Exception raised when form values do not satisfy the active schema."""

    def __init__(self, result):
        super().__init__(str(result))
        self.result = result


class ReferenceLookupError(MachineFormError):
    """
    Exception raised when a selected name is missing from the reference data.

    This means the loaded reference list is stale; the user has to
    re-select the value before submitting again.
    """

    def __init__(self, field_name: str, value: str, label: Optional[str] = None):
        label = label or field_name.replace("_", " ")
        super().__init__(
            f"{label.capitalize()} '{value}' no longer exists. "
            f"Please select another {label}."
        )
        self.field_name = field_name
        self.value = value


MappingError = ReferenceLookupError


class SubmissionError(MachineFormError):
    """Exception raised when the inventory endpoint rejects a creation command."""

    def __init__(self, error_info: Optional[ErrorInfo] = None):
        self.error_info = error_info or SingleError(message="Unknown error")
        super().__init__(format_error_info(self.error_info))

    @classmethod
    def from_payload(cls, payload: Any) -> "SubmissionError":
        """Build a SubmissionError from a raw failure payload."""
        return cls(error_info_from_payload(payload))


class TransportError(SubmissionError):
    """Exception raised when the dispatcher fails to reach the endpoint."""

    def __init__(self, message: str = "Unable to reach the server"):
        super().__init__(SingleError(message=message))
