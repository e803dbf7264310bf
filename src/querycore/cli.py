"""CLI entry point for querycore."""

from __future__ import annotations

import json
import logging
from typing import Any

import click

from .core.config import load_settings
from .hashing.keys import KeyHasher
from .hashing.serializer import stable_serialize
from .observability.logger import setup_logging

logger = logging.getLogger(__name__)


def _parse_json(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc.msg}") from exc


@click.group()
@click.option("--config", default=None, help="TOML config file path")
@click.option("--log-level", default=None, help="Override log level")
@click.option(
    "--log-format",
    default=None,
    type=click.Choice(["json", "console"]),
    help="Override log format",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: str | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Canonical query keys."""
    settings = load_settings(config_path=config)
    obs = settings.observability
    setup_logging(
        level=log_level or obs.log_level,
        format=log_format or obs.log_format,
    )
    ctx.obj = settings


@main.command("hash")
@click.argument("identifier")
@click.option("--digest", is_flag=True, help="Print the SHA-256 digest instead")
@click.option("--length", default=None, type=click.IntRange(1, 64), help="Digest length")
@click.pass_obj
def hash_cmd(settings, identifier: str, digest: bool, length: int | None) -> None:
    """Print the cache key for IDENTIFIER (a JSON array)."""
    key = _parse_json(identifier)
    if not isinstance(key, list):
        logger.warning("Identifier is not an array: %s", type(key).__name__)

    hasher = KeyHasher.from_settings(settings)
    if digest:
        if length is not None:
            hasher = KeyHasher(prefix=hasher.prefix, digest_length=length)
        click.echo(hasher.digest(key))
    else:
        click.echo(hasher.hash(key))


@main.command()
@click.argument("value")
def serialize(value: str) -> None:
    """Print the canonical form of VALUE (any JSON)."""
    click.echo(stable_serialize(_parse_json(value)))
