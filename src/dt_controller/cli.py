"""Digital Twins lifecycle CLI (dtctl).

Usage:
    dtctl create spec.yaml                    # Provision an instance, print its ID and state
    dtctl read ID                             # Print current state (exit 3 if gone)
    dtctl update ID spec.yaml --changed tags  # Patch only the changed fields
    dtctl delete ID                           # Delete an instance (absent is fine)
    dtctl import ID                           # Validate an ID before importing it

Configuration comes from the environment, see Config.from_env().
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from .config import Config, ConfigurationError
from .errors import AlreadyExistsError, LifecycleError
from .main import setup_logging
from .reconciler import LifecycleReconciler
from .security import SecretlessViolationError
from .spec_loader import SpecLoadError, load_spec

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXIT_ERROR = 1
EXIT_SECURITY = 2
EXIT_NOT_FOUND = 3


def _echo_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def _fail(message: str, code: int = EXIT_ERROR) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(code)


def _reconciler(ctx: click.Context) -> LifecycleReconciler:
    """Build the reconciler lazily so `import` needs no configuration."""
    obj = ctx.ensure_object(dict)
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        _fail(str(e))
    setup_logging(json_output=config.enable_audit_logging, level=obj.get("log_level", logging.INFO))
    try:
        return LifecycleReconciler.from_config(config, transport=obj.get("transport"))
    except SecretlessViolationError as e:
        logger.critical("Security violation: credentials detected in environment")
        _fail(str(e), EXIT_SECURITY)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except AlreadyExistsError as e:
        click.echo(f"Existing resource ID: {e.existing_id}", err=True)
        _fail(str(e))
    except LifecycleError as e:
        _fail(str(e))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Manage the lifecycle of Azure Digital Twins instances."""
    obj = ctx.ensure_object(dict)
    obj["log_level"] = logging.DEBUG if verbose else logging.INFO


@cli.command()
@click.argument("spec_file", type=click.Path(path_type=Path))
@click.pass_context
def create(ctx: click.Context, spec_file: Path) -> None:
    """Create an instance from SPEC_FILE."""
    try:
        spec = load_spec(spec_file)
    except SpecLoadError as e:
        _fail(str(e))
    reconciler = _reconciler(ctx)
    result = _run(reconciler.create(spec))
    _echo_json({"id": result.identity, "state": result.state.to_dict()})


@cli.command()
@click.argument("resource_id")
@click.pass_context
def read(ctx: click.Context, resource_id: str) -> None:
    """Print the current state of RESOURCE_ID."""
    reconciler = _reconciler(ctx)
    result = _run(reconciler.read(resource_id))
    if not result.found:
        click.echo(f"Digital Twins instance {resource_id} does not exist", err=True)
        raise SystemExit(EXIT_NOT_FOUND)
    _echo_json({"id": resource_id, "state": result.state.to_dict()})


@cli.command()
@click.argument("resource_id")
@click.argument("spec_file", type=click.Path(path_type=Path))
@click.option(
    "--changed",
    "changed_fields",
    multiple=True,
    required=True,
    help="Spec field that changed (repeatable).",
)
@click.pass_context
def update(
    ctx: click.Context, resource_id: str, spec_file: Path, changed_fields: tuple[str, ...]
) -> None:
    """Apply the changed fields of SPEC_FILE to RESOURCE_ID."""
    try:
        spec = load_spec(spec_file)
    except SpecLoadError as e:
        _fail(str(e))
    reconciler = _reconciler(ctx)
    state = _run(reconciler.update(resource_id, spec, changed_fields))
    _echo_json({"id": resource_id, "state": state.to_dict()})


@cli.command()
@click.argument("resource_id")
@click.pass_context
def delete(ctx: click.Context, resource_id: str) -> None:
    """Delete RESOURCE_ID."""
    reconciler = _reconciler(ctx)
    _run(reconciler.delete(resource_id))
    click.echo(f"Deleted {resource_id}")


@cli.command("import")
@click.argument("resource_id")
def import_(resource_id: str) -> None:
    """Validate RESOURCE_ID so it can be imported."""
    try:
        address = LifecycleReconciler.import_id(resource_id)
    except LifecycleError as e:
        _fail(str(e))
    _echo_json(
        {
            "subscription_id": address.subscription_id,
            "resource_group_name": address.resource_group,
            "name": address.name,
        }
    )
