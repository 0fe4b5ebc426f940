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
CLI commands for the Add Machine form.

This module provides Click commands that drive the Add Machine form core
offline: listing power types and their parameters, validating machine
values, and running a full add against a dry-run endpoint.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import yaml
from tabulate import tabulate

from maas_console.machines.add_machine_form import AddMachineForm, FormStatus
from maas_console.machines.errors import ValidationFailedError
from maas_console.machines.file_store import DryRunEndpoint, YamlReferenceStore
from maas_console.machines.reference_data import ReferenceDataLoader
from maas_console.machines.validators.machine_schema import (
    ValidationResult,
    get_validation_errors_summary,
)
from maas_console.settings import FormSettings, SettingsError, load_settings
from maas_console.utils import set_logging_level, setup_logger

logger = setup_logger(__name__)


class ClickNotifier:
    """Notifier that echoes notifications to the terminal."""

    def success(self, message: str) -> None:
        click.secho(f"✓ {message}", fg="green")

    def error(self, message: str) -> None:
        click.secho(f"✗ {message}", fg="red", err=True)


def _load_settings(config_path: Optional[str]) -> FormSettings:
    try:
        return load_settings(config_path)
    except SettingsError as e:
        raise click.ClickException(str(e))


def _load_values_file(values_path: str) -> Dict[str, Any]:
    """
    Load machine values from a YAML file.

    Raises:
        click.ClickException: If the file is missing or invalid.
    """
    values_file = Path(values_path)
    if not values_file.exists():
        raise click.ClickException(f"Values file not found: {values_path}")

    try:
        with open(values_file, "r") as f:
            values = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise click.ClickException(f"Invalid YAML in values file: {e}")

    if not isinstance(values, dict):
        raise click.ClickException(f"Values file must contain a mapping: {values_path}")
    return values


async def _open_form(
    inventory_path: str,
    settings: FormSettings,
    endpoint: DryRunEndpoint,
    navigate_to=None,
) -> AddMachineForm:
    """
    Create an Add Machine form backed by an inventory file and wait for it.

    Raises:
        click.ClickException: If the inventory cannot be read or a required
            collection fails to load.
    """
    logger.debug(f"Opening add machine form with inventory {inventory_path}")
    try:
        store = YamlReferenceStore.from_file(inventory_path)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    loader = ReferenceDataLoader(store, settings.required_collections)
    form = AddMachineForm(
        loader,
        endpoint,
        notifier=ClickNotifier(),
        navigate_to=navigate_to,
        settings=settings,
    )
    form.activate()
    await loader.wait()

    if not form.is_ready():
        failed = [
            f"{name} ({collection.error})"
            for name, collection in loader.snapshot().items()
            if not collection.loaded
        ]
        raise click.ClickException(
            f"Reference data failed to load: {', '.join(failed)}"
        )
    return form


def _format_errors_table(result: ValidationResult) -> str:
    table_data = [[error.field, error.message] for error in result.errors]
    return tabulate(table_data, headers=["Field", "Error"], tablefmt="presto")


@click.group("maas-console")
def cli():
    """Machine management console tools."""
    pass


@cli.group("machine")
def machine():
    """Add machines to the inventory."""
    pass


@machine.command("power-types")
@click.option(
    "--inventory",
    "inventory_path",
    required=True,
    type=click.Path(),
    help="Inventory YAML file with the reference collections",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    help="Settings YAML file",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
def machine_power_types(inventory_path: str, config_path: Optional[str], debug: bool):
    """
    List the power types and the parameters each of them needs.

    .. code-block:: bash

       maas-console machine power-types --inventory inventory.yaml
    """
    if debug:
        set_logging_level(logging.DEBUG)

    settings = _load_settings(config_path)
    form = asyncio.run(_open_form(inventory_path, settings, DryRunEndpoint()))
    registry = form.registry

    if not registry.names():
        click.echo("No power types found.")
        return

    table_data = []
    for name in registry.names():
        fields = registry.fields_for(name)
        if not fields:
            table_data.append([name, "", "", "", "", ""])
        for power_field in fields:
            table_data.append([
                name,
                power_field.name,
                power_field.display_label,
                "yes" if power_field.required else "no",
                power_field.field_type.value,
                power_field.scope.value,
            ])
    click.echo(tabulate(
        table_data,
        headers=["Power Type", "Parameter", "Label", "Required", "Type", "Scope"],
        tablefmt="presto",
    ))


@machine.command("validate")
@click.argument("values_path", type=click.Path())
@click.option(
    "--inventory",
    "inventory_path",
    required=True,
    type=click.Path(),
    help="Inventory YAML file with the reference collections",
)
@click.option(
    "--output",
    type=click.Choice(["json", "table"]),
    default="table",
    help="Output format (json or table)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    help="Settings YAML file",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
def machine_validate(
    values_path: str,
    inventory_path: str,
    output: str,
    config_path: Optional[str],
    debug: bool,
):
    """
    Validate machine values against the schema of their power type.

    Values not given in the file take the form defaults.

    .. code-block:: bash

       maas-console machine validate machine.yaml --inventory inventory.yaml
    """
    if debug:
        set_logging_level(logging.DEBUG)

    settings = _load_settings(config_path)
    values = _load_values_file(values_path)
    form = asyncio.run(_open_form(inventory_path, settings, DryRunEndpoint()))
    form.set_values(values)
    try:
        result = ValidationResult(values=form.schema.validate_or_raise(form.values))
    except ValidationFailedError as e:
        result = e.result

    if output == "json":
        click.echo(json.dumps(
            {
                "valid": result.is_valid,
                "errors": [
                    {"field": error.field, "message": error.message, "type": error.error_type}
                    for error in result.errors
                ],
            },
            indent=2,
        ))
    elif result.is_valid:
        click.secho(get_validation_errors_summary(result), fg="green")
    else:
        click.echo(_format_errors_table(result))

    if not result.is_valid:
        sys.exit(1)


@machine.command("add")
@click.argument("values_path", type=click.Path())
@click.option(
    "--inventory",
    "inventory_path",
    required=True,
    type=click.Path(),
    help="Inventory YAML file with the reference collections",
)
@click.option(
    "--add-another",
    is_flag=True,
    help="Reset the form after saving instead of leaving it",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    help="Settings YAML file",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
def machine_add(
    values_path: str,
    inventory_path: str,
    add_another: bool,
    config_path: Optional[str],
    debug: bool,
):
    """
    Add a machine using a dry-run endpoint and print the creation request.

    .. code-block:: bash

       # Save the machine
       maas-console machine add machine.yaml --inventory inventory.yaml

       # Save and reopen the form for another machine
       maas-console machine add machine.yaml --inventory inventory.yaml --add-another
    """
    if debug:
        set_logging_level(logging.DEBUG)

    settings = _load_settings(config_path)
    values = _load_values_file(values_path)
    endpoint = DryRunEndpoint()

    async def _add():
        form = await _open_form(
            inventory_path,
            settings,
            endpoint,
            navigate_to=lambda path: click.echo(f"Redirecting to {path}"),
        )
        result = await form.submit(values, reset_on_save=add_another)
        return form, result

    form, result = asyncio.run(_add())

    if not result.is_valid:
        raise click.ClickException(get_validation_errors_summary(result))
    if form.status is FormStatus.FAILED:
        raise click.ClickException(form.error_message)

    click.echo(json.dumps(endpoint.requests[-1], indent=2, default=str))
    if add_another and form.status is FormStatus.READY:
        click.echo("Form reset for the next machine.")


if __name__ == "__main__":
    cli()
