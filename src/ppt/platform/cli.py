#!/usr/bin/env python
"""
Feature flag management commands.

Usage::

    ppt-features list --format json
    ppt-features enable ai_suggestions --org <org-id>
    ppt-features disable beta_features --user <user-id>
    ppt-features show ai_suggestions
    ppt-features export --output features.yaml
    ppt-features import features.yaml --dry-run
    ppt-features resolve --user <user-id> --org <org-id>
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TypeVar
from uuid import UUID

import click
import yaml
from pydantic import ValidationError

from ppt.platform.db import get_async_db, utcnow
from ppt.platform.features.exceptions import FeatureError
from ppt.platform.features.models import OverrideScope
from ppt.platform.features.repository import FeatureFlagRepository
from ppt.platform.features.schemas import FeatureFlagCreate

T = TypeVar("T")


class AsyncSessionManager(Protocol):
    async def __aenter__(self) -> Any: ...  # pragma: no cover - protocol definition
    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> Any: ...  # pragma: no cover


@dataclass
class CLIDependencies:
    """Bundle of injectable dependencies used by CLI commands."""

    session_factory: Callable[[], AsyncSessionManager]
    path_factory: Callable[[str], Path]
    shutdown: Callable[[], Awaitable[None]]


def _get_cli_dependencies() -> CLIDependencies:
    """Return the default dependency bundle for CLI commands."""
    from ppt.platform.db import dispose_engine

    return CLIDependencies(
        session_factory=get_async_db,
        path_factory=Path,
        shutdown=dispose_engine,
    )


def _run(deps: CLIDependencies, work: Callable[[], Awaitable[T]]) -> T:
    """Run a command body, turning feature errors into CLI errors."""

    async def _main() -> T:
        try:
            return await work()
        except FeatureError as e:
            raise click.ClickException(e.message) from e
        finally:
            await deps.shutdown()

    return asyncio.run(_main())


def _scope(
    user: UUID | None, org: UUID | None, role: UUID | None
) -> tuple[OverrideScope, UUID] | None:
    # Most specific scope wins when several are given
    if user is not None:
        return OverrideScope.USER, user
    if org is not None:
        return OverrideScope.ORGANIZATION, org
    if role is not None:
        return OverrideScope.ROLE, role
    return None


def _scope_options(command: Callable[..., Any]) -> Callable[..., Any]:
    command = click.option("--role", type=click.UUID, help="Role ID (role-level override)")(command)
    command = click.option("--user", type=click.UUID, help="User ID (user-level override)")(command)
    command = click.option(
        "--org", type=click.UUID, help="Organization ID (organization-level override)"
    )(command)
    return command


@click.group()
def cli() -> None:
    """Feature flag management for the PPT platform."""
    pass


@cli.command("list")
@click.option(
    "--format", "output_format", type=click.Choice(["table", "json"]), default="table",
    help="Output format",
)
def list_flags(output_format: str) -> None:
    """List all feature flags."""
    deps = _get_cli_dependencies()

    async def _list() -> None:
        async with deps.session_factory() as session:
            repo = FeatureFlagRepository(session)
            flags = await repo.list_all()
            counts = await repo.override_counts()

        if output_format == "json":
            rows = [
                {
                    "key": flag.key,
                    "name": flag.name,
                    "description": flag.description,
                    "is_enabled": flag.is_enabled,
                    "override_count": counts.get(flag.id, 0),
                }
                for flag in flags
            ]
            click.echo(json.dumps(rows, indent=2))
            return

        click.echo(f"{'KEY':<30} {'NAME':<40} {'ENABLED':<10} {'OVERRIDES':<10}")
        click.echo("-" * 90)
        for flag in flags:
            enabled = "Yes" if flag.is_enabled else "No"
            click.echo(f"{flag.key:<30} {flag.name:<40} {enabled:<10} {counts.get(flag.id, 0):<10}")
        click.echo()
        click.echo(f"Total: {len(flags)} feature flags")

    _run(deps, _list)


def _set_flag(key: str, is_enabled: bool, org: UUID | None, user: UUID | None, role: UUID | None) -> None:
    deps = _get_cli_dependencies()
    action = "enabled" if is_enabled else "disabled"

    async def _set() -> None:
        async with deps.session_factory() as session:
            repo = FeatureFlagRepository(session)
            scope = _scope(user, org, role)
            if scope is None:
                await repo.update(key, is_enabled=is_enabled)
                click.echo(f"Feature '{key}' {action} globally")
                return

            scope_type, scope_id = scope
            flag = await repo.require(key)
            await repo.set_override(flag.id, scope_type, scope_id, is_enabled)
            click.echo(f"Feature '{key}' {action} for {scope_type.value} {scope_id}")

    _run(deps, _set)


@cli.command()
@click.argument("key")
@_scope_options
def enable(key: str, org: UUID | None, user: UUID | None, role: UUID | None) -> None:
    """Enable a feature flag globally or for one scope."""
    _set_flag(key, True, org, user, role)


@cli.command()
@click.argument("key")
@_scope_options
def disable(key: str, org: UUID | None, user: UUID | None, role: UUID | None) -> None:
    """Disable a feature flag globally or for one scope."""
    _set_flag(key, False, org, user, role)


@cli.command()
@click.argument("key")
def show(key: str) -> None:
    """Show a feature flag and its overrides."""
    deps = _get_cli_dependencies()

    async def _show() -> None:
        async with deps.session_factory() as session:
            repo = FeatureFlagRepository(session)
            flag = await repo.require(key)
            overrides = await repo.list_overrides(flag.id)

        click.echo(f"Feature Flag: {flag.key}")
        click.echo(f"  Name: {flag.name}")
        if flag.description:
            click.echo(f"  Description: {flag.description}")
        click.echo(f"  Global Enabled: {flag.is_enabled}")
        click.echo(f"  Created: {flag.created_at:%Y-%m-%d %H:%M:%S}")
        click.echo(f"  Updated: {flag.updated_at:%Y-%m-%d %H:%M:%S}")
        click.echo()

        if not overrides:
            click.echo("  No overrides configured.")
            return
        click.echo(f"  Overrides ({len(overrides)}):")
        for override in overrides:
            status = "enabled" if override.is_enabled else "disabled"
            click.echo(f"    - {override.scope_type} {override.scope_id}: {status}")

    _run(deps, _show)


@cli.command()
@click.option("--output", default="features.yaml", help="Output file path")
def export(output: str) -> None:
    """Export feature flags to YAML."""
    deps = _get_cli_dependencies()

    async def _export() -> None:
        async with deps.session_factory() as session:
            flags = await FeatureFlagRepository(session).list_all()

        entries = []
        for flag in flags:
            entry: dict[str, Any] = {"key": flag.key, "name": flag.name}
            if flag.description is not None:
                entry["description"] = flag.description
            entry["is_enabled"] = flag.is_enabled
            entries.append(entry)

        header = f"# Feature flags export\n# Generated: {utcnow().isoformat()}\n\n"
        body = yaml.safe_dump({"feature_flags": entries}, sort_keys=False, allow_unicode=True)
        deps.path_factory(output).write_text(header + body, encoding="utf-8")
        click.echo(f"Exported {len(flags)} feature flags to {output}")

    _run(deps, _export)


def _load_import_file(text: str) -> list[tuple[FeatureFlagCreate, set[str]]]:
    """Parse an export document into flags and the fields each entry sets."""
    try:
        document = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise click.ClickException(f"Invalid YAML: {e}") from e

    entries = document.get("feature_flags") if isinstance(document, dict) else None
    if not isinstance(entries, list):
        raise click.ClickException("Expected a 'feature_flags' list")

    flags = []
    for position, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise click.ClickException(f"Invalid entry #{position}: expected a mapping")
        given = set(entry) - {"key"}
        try:
            flag = FeatureFlagCreate.model_validate({"name": entry.get("key"), **entry})
        except ValidationError as e:
            raise click.ClickException(f"Invalid entry #{position}: {e.errors()[0]['msg']}") from e
        flags.append((flag, given))
    return flags


@cli.command("import")
@click.argument("file")
@click.option("--dry-run", is_flag=True, help="Report changes without applying them")
def import_flags(file: str, dry_run: bool) -> None:
    """Import feature flags from YAML, creating or updating by key."""
    deps = _get_cli_dependencies()
    try:
        text = deps.path_factory(file).read_text(encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Cannot read {file}: {e.strerror}") from e
    flags = _load_import_file(text)

    click.echo(f"Importing feature flags from {file}")
    if dry_run:
        click.echo("(Dry run - no changes will be applied)")
    click.echo()

    async def _import() -> tuple[int, int]:
        created = updated = 0
        async with deps.session_factory() as session:
            repo = FeatureFlagRepository(session)
            for flag, given in flags:
                click.echo(f"  {flag.key} - {flag.name} (enabled: {str(flag.is_enabled).lower()})")
                exists = await repo.get_by_key(flag.key) is not None
                if exists:
                    updated += 1
                else:
                    created += 1
                if dry_run:
                    continue

                if exists:
                    changes = flag.model_dump(include=given)
                    await repo.update(flag.key, **changes)
                else:
                    await repo.create(**flag.model_dump())
        return created, updated

    created, updated = _run(deps, _import)
    click.echo()
    if dry_run:
        click.echo(f"Would create {created} and update {updated} feature flags")
    else:
        click.echo(f"Created {created} and updated {updated} feature flags")


@cli.command()
@_scope_options
@click.option(
    "--format", "output_format", type=click.Choice(["table", "json"]), default="table",
    help="Output format",
)
def resolve(output_format: str, org: UUID | None, user: UUID | None, role: UUID | None) -> None:
    """Resolve flags for a context from overrides and global defaults."""
    deps = _get_cli_dependencies()

    async def _resolve() -> None:
        async with deps.session_factory() as session:
            resolved = await FeatureFlagRepository(session).resolve_all_for_context(user, org, role)

        if output_format == "json":
            click.echo(json.dumps([{"key": k, "is_enabled": v} for k, v in resolved.items()], indent=2))
            return

        click.echo("Resolved Features for Context:")
        for label, value in (("User", user), ("Organization", org), ("Role", role)):
            if value is not None:
                click.echo(f"  {label}: {value}")
        click.echo()
        click.echo(f"{'KEY':<40} {'ENABLED':<10}")
        click.echo("-" * 50)
        for key, is_enabled in resolved.items():
            click.echo(f"{key:<40} {'Yes' if is_enabled else 'No':<10}")
        click.echo()
        enabled = sum(resolved.values())
        click.echo(f"Total: {len(resolved)} features, {enabled} enabled")

    _run(deps, _resolve)


if __name__ == "__main__":
    cli()
