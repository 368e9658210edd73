"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import plistlib
from dataclasses import dataclass, replace
from pathlib import Path

import typer

from idevctl.api import Client
from idevctl.core.config import load_config
from idevctl.core.errors import IdevctlError
from idevctl.core.pairing import load_pairing_record

app = typer.Typer(help="Query and manage iOS devices over lockdown")


@dataclass
class _Options:
    host: str
    port: int | None
    pair_record: Path | None
    config: Path | None


def _build_client(ctx: typer.Context) -> Client:
    options: _Options = ctx.obj
    loaded = load_config(options.config)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    config = loaded.config
    if options.port is not None:
        config = replace(config, lockdown_port=options.port)
    record = load_pairing_record(options.pair_record) if options.pair_record else None
    return Client(options.host, config=config, pairing_record=record)


def _format(value: object) -> str:
    if isinstance(value, (dict, list)):
        return plistlib.dumps(value, fmt=plistlib.FMT_XML).decode("utf-8").rstrip()
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


@app.callback()
def main(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Device or tunnel address"),
    port: int | None = typer.Option(None, "--port", help="Lockdown port override"),
    pair_record: Path | None = typer.Option(None, "--pair-record", help="Pairing record plist"),
    config: Path | None = typer.Option(None, "--config", help="Extra YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol traffic"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    ctx.obj = _Options(host=host, port=port, pair_record=pair_record, config=config)


@app.command("get")
def get_value(
    ctx: typer.Context,
    key: str,
    domain: str | None = typer.Option(None, "--domain", help="Lockdown domain"),
) -> None:
    """Print a single lockdown value."""
    try:
        client = _build_client(ctx)
        try:
            typer.echo(_format(client.get_value(key, domain=domain)))
        finally:
            client.close()
    except IdevctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("values")
def get_all_values(
    ctx: typer.Context,
    domain: str | None = typer.Option(None, "--domain", help="Lockdown domain"),
) -> None:
    """Print every lockdown value in a domain."""
    try:
        client = _build_client(ctx)
        try:
            values = client.get_all_values(domain=domain)
        finally:
            client.close()
        for key, value in sorted(values.items()):
            typer.echo(f"{key}: {_format(value)}")
    except IdevctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("service")
def start_service(ctx: typer.Context, name: str) -> None:
    """Ask lockdown for a service's port and TLS requirement."""
    try:
        client = _build_client(ctx)
        try:
            descriptor = client.discover(name)
        finally:
            client.close()
        tls = "yes" if descriptor.requires_tls else "no"
        typer.echo(f"{descriptor.name}: port={descriptor.port} tls={tls}")
    except IdevctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("apps")
def list_apps(
    ctx: typer.Context,
    app_type: str = typer.Option("User", "--type", help="ApplicationType filter (User, System, Any)"),
) -> None:
    """List installed applications."""
    try:
        client = _build_client(ctx)
        try:
            apps = client.list_installed_apps(options={"ApplicationType": app_type})
        finally:
            client.close()
        if not apps:
            typer.echo("No applications found")
            return
        for entry in apps:
            if not isinstance(entry, dict):
                continue
            bundle_id = entry.get("CFBundleIdentifier", "<unknown>")
            version = entry.get("CFBundleShortVersionString", "")
            typer.echo(f"{bundle_id} {version}".rstrip())
    except IdevctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("profiles")
def list_profiles(ctx: typer.Context) -> None:
    """List installed provisioning profiles."""
    try:
        client = _build_client(ctx)
        try:
            profiles = client.list_profiles()
        finally:
            client.close()
        typer.echo(f"{len(profiles)} provisioning profile(s)")
        for index, profile in enumerate(profiles):
            typer.echo(f"  [{index}] {len(profile)} bytes")
    except IdevctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
