"""
CLI interface for buildorch.

Provides commands to build the project and to query build information.

The package environment (source map, local packages, databases) and the
planner/executor implementations come from a backend factory named in
build.yaml as "module:attribute". The factory is called as
factory(config, build_opts_cli) and returns (BuildEnv, Collaborators).
"""

import importlib
from pathlib import Path
from typing import Callable

import click
import yaml

from buildorch import __version__
from buildorch.config import DEFAULT_CONFIG_NAME, BuildOptsCLI, Config, ConfigError


BackendFactory = Callable[[Config, BuildOptsCLI], tuple]


def load_backend(spec: str) -> BackendFactory:
    """
    Import the backend factory named by "module:attribute".

    Raises:
        ConfigError: If the module or attribute cannot be found
    """
    module_name, _, attr = spec.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import backend module '{module_name}': {e}") from e
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"Backend '{spec}' is not a callable")
    return factory


def _require_config(ctx) -> Config:
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo(f"Run 'buildorch init' to create a {DEFAULT_CONFIG_NAME}.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _make_env(config: Config, opts: BuildOptsCLI):
    from buildorch.utils import setup_logging

    setup_logging(config.logging.level, config.logging.format, config.logging.file)

    if not config.backend:
        click.echo(f"✗ No backend configured in {config.config_path}", err=True)
        raise SystemExit(1)
    try:
        factory = load_backend(config.backend)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)
    return factory(config, opts)


@click.group()
@click.version_option(version=__version__, prog_name="buildorch")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Path to {DEFAULT_CONFIG_NAME} (default: search upwards from the current directory)",
)
@click.pass_context
def main(ctx, config_path):
    """
    buildorch - Package build orchestrator.

    Validates and plans builds of local packages against a dependency snapshot.
    """
    from buildorch.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        # init does not need a config; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)


@main.command("build")
@click.argument("targets", nargs=-1)
@click.option("--dry-run", is_flag=True, help="Print the plan instead of building")
@click.option("--watch-all", is_flag=True, help="Treat every local package's files as relevant")
@click.option("--initial-build-steps", is_flag=True, help="Only perform the initial build steps")
@click.option("--prefetch", is_flag=True, help="Fetch all dependencies before building")
@click.pass_context
def build(ctx, targets, dry_run: bool, watch_all: bool, initial_build_steps: bool, prefetch: bool):
    """
    Build the project.

    TARGETS are package names or package:component (e.g. app:exe:app).
    Without targets the backend's default targets are built.

    Examples:

        buildorch build

        buildorch build app:exe:app --dry-run
    """
    from buildorch.build import run_build

    config = _require_config(ctx)
    if prefetch:
        config = config.with_build_opts(pre_fetch=True)

    opts = BuildOptsCLI(
        targets=tuple(targets),
        dry_run=dry_run,
        watch_all=watch_all,
        initial_build_steps=initial_build_steps,
    )
    env, collaborators = _make_env(config, opts)

    try:
        if targets:
            env = env.with_targets(targets)
        run_build(env, collaborators)
    except Exception as e:
        click.echo(f"✗ Build failed: {e}", err=True)
        raise SystemExit(1)

    if not dry_run:
        click.echo("✓ Build completed")


@main.command("query")
@click.argument("selectors", nargs=-1)
@click.pass_context
def query(ctx, selectors):
    """
    Query build information as YAML.

    SELECTORS navigate the document one level at a time, e.g.

        buildorch query locals app version
    """
    from buildorch.errors import QueryError
    from buildorch.query import query_build_info

    config = _require_config(ctx)
    env, _ = _make_env(config, BuildOptsCLI())

    try:
        text = query_build_info(env, list(selectors))
    except QueryError as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)
    click.echo(text, nl=False)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Write a default build.yaml in the current directory."""
    cfg_path = Path.cwd() / DEFAULT_CONFIG_NAME
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "allow-locals": True,
        "modify-code-page": True,
        "backend": None,
        "build": {
            "split-objs": False,
            "prefetch": False,
        },
        "logging": {
            "level": "INFO",
            "format": "pretty",
        },
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))
    click.echo(f"Initialized buildorch config at {cfg_path}")
    click.echo("Set 'backend' to the module:attribute of your backend factory before building.")


if __name__ == "__main__":
    main()
