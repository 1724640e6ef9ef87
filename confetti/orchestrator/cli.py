from __future__ import annotations

import importlib
import pkgutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from ..errors import ConfettiError, ConfigError
from .core import Pipeline, TaskSpec, chain
from .fileset import Fileset
from .logging import get_logger
from .utils import parse_kv


app = typer.Typer(add_completion=False, help="Create and deploy static sites on AWS")
log = get_logger("confetti.cli")

DEFAULT_CONFIG = "confetti.yaml"
DEFAULT_FILESET_DIR = "target"


def load_config(path: str | Path | None) -> dict:
    """Read the YAML config. Without an explicit path a missing default is fine."""
    if path is None:
        p = Path(DEFAULT_CONFIG)
        if not p.exists():
            return {}
    else:
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"Config file not found: {p}")
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {p} must be a mapping")
    return data


def discover_tasks() -> Dict[str, TaskSpec]:
    """Import all modules in `tasks` package and collect decorated functions."""
    tasks_pkg = "confetti.tasks"
    specs: Dict[str, TaskSpec] = {}
    try:
        pkg = importlib.import_module(tasks_pkg)
    except ModuleNotFoundError:
        log.warning("No tasks package found.")
        return specs
    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{tasks_pkg}."):
        try:
            mod = importlib.import_module(m.name)
        except Exception as e:  # noqa: BLE001
            log.warning("Failed to import %s: %s", m.name, e)
            continue
        for attr_name in dir(mod):
            obj = getattr(mod, attr_name)
            spec = getattr(obj, "_task_spec", None)
            if isinstance(spec, TaskSpec):
                specs[spec.name] = spec
    return specs


def with_overrides(params: dict, section: str, **overrides: Any) -> dict:
    """Copy of `params` with the CLI values actually given layered over `params[section]`.

    `None` means the flag was not passed; `False` (e.g. `--no-prune`) is kept.
    """
    params = dict(params)
    merged = dict(params.get(section) or {})
    for k, v in overrides.items():
        if v is None or v == {} or v == "":
            continue
        merged[k] = v
    params[section] = merged
    return params


def _fileset(params: dict, fileset_dir: Optional[str]) -> Fileset:
    """Fileset for a run. A directory named explicitly must exist."""
    root = fileset_dir or (params.get("fileset") or {}).get("dir")
    if root is None:
        return Fileset.from_dir(DEFAULT_FILESET_DIR)
    if not Path(root).is_dir():
        raise ConfigError(f"Fileset directory not found: {root}", metadata={"dir": str(root)})
    return Fileset.from_dir(root)


def _fail(e: Exception) -> None:
    typer.secho(str(e), fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _run(
    names: List[str],
    params: dict,
    fileset: Fileset,
    retries: int = 0,
    from_step: Optional[str] = None,
    until_step: Optional[str] = None,
) -> Fileset:
    specs = discover_tasks()
    missing = [n for n in names if n not in specs]
    if missing:
        typer.echo("Task not found: " + ", ".join(missing))
        raise typer.Exit(code=1)
    repeated = sorted({n for n in names if names.count(n) > 1})
    if repeated:
        typer.echo("Task listed more than once: " + ", ".join(repeated))
        raise typer.Exit(code=1)
    pipe = Pipeline(
        tasks={n: specs[n] for n in names},
        edges=chain(names),
        name="+".join(names),
    )
    try:
        pipe.select_steps(from_step, until_step)
    except KeyError as e:
        _fail(ConfigError(e.args[0]))
    try:
        return pipe.run(
            params=params,
            fileset=fileset,
            from_step=from_step,
            until_step=until_step,
            retries=retries,
        )
    except ConfettiError as e:
        _fail(e)


@app.command("list")
def list_tasks():
    """List discovered tasks."""
    specs = discover_tasks()
    if not specs:
        typer.echo("No tasks discovered.")
        raise typer.Exit(code=0)
    typer.echo("Discovered tasks:")
    for name in sorted(specs.keys()):
        typer.echo(f"- {name}: {specs[name].help}")


@app.command("create-site")
def create_site(
    domain: Optional[str] = typer.Option(
        None, "--domain", "-d", help="Domain of the future site (without protocol)"
    ),
    creds: Optional[List[str]] = typer.Option(
        None, "--creds", "-c", help="Credentials as K=V (access-key, secret-key)"
    ),
    dns: Optional[bool] = typer.Option(
        None, "--dns/--no-dns", "-n/-N", help="Handle DNS? (i.e. create Route53 Hosted Zone)"
    ),
    verbose: Optional[bool] = typer.Option(
        None, "--verbose/--quiet", "-v/-V", help="Print all events in full during creation"
    ),
    dry_run: Optional[bool] = typer.Option(
        None, "--dry-run/--no-dry-run", "-r/-R", help="Only print the template, don't run it"
    ),
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
):
    """Create all resources for deployment of a static site or Single Page App."""
    try:
        params = load_config(config)
        params = with_overrides(
            params,
            "create_site",
            domain=domain,
            creds=parse_kv(creds),
            dns=dns,
            verbose=verbose,
            dry_run=dry_run,
        )
    except ConfettiError as e:
        _fail(e)
    _run(["create-site"], params, Fileset())


@app.command("sync-bucket")
def sync_bucket(
    bucket: Optional[str] = typer.Option(
        None, "--bucket", "-b", help="Name of S3 bucket to push files to"
    ),
    creds: Optional[List[str]] = typer.Option(
        None, "--creds", "-c", help="Credentials as K=V (access-key, secret-key)"
    ),
    fmap: Optional[str] = typer.Option(
        None, "--fmap", "-f", help="Path of a file-map YAML/JSON file in the fileset"
    ),
    dir: Optional[str] = typer.Option(None, "--dir", "-d", help="Directory to sync"),
    dry_run: Optional[bool] = typer.Option(
        None,
        "--dry-run/--no-dry-run",
        "-y/-Y",
        help="Report as usual but don't actually do anything",
    ),
    prune: Optional[bool] = typer.Option(
        None,
        "--prune/--no-prune",
        "-p/-P",
        help="Delete files from S3 bucket not in fileset/dir",
    ),
    fileset: Optional[str] = typer.Option(
        None, help=f"Directory used as the fileset (default: {DEFAULT_FILESET_DIR})"
    ),
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
):
    """Sync fileset (default), directory or file maps to an S3 bucket."""
    try:
        params = load_config(config)
        params = with_overrides(
            params,
            "sync_bucket",
            bucket=bucket,
            creds=parse_kv(creds),
            fmap=fmap,
            dir=dir,
            dry_run=dry_run,
            prune=prune,
        )
        files = _fileset(params, fileset)
    except ConfettiError as e:
        _fail(e)
    _run(["sync-bucket"], params, files)


@app.command()
def run(
    names: List[str] = typer.Argument(..., help="Tasks to run, in order"),
    config: Optional[str] = typer.Option(None, help="Path to YAML config"),
    fileset: Optional[str] = typer.Option(None, help="Directory used as the fileset"),
    retries: int = typer.Option(0, help="Retries per task on failure"),
    from_step: Optional[str] = typer.Option(None, help="Start at this task"),
    until_step: Optional[str] = typer.Option(None, help="Stop after this task"),
):
    """Run several tasks in order, options taken from the YAML config."""
    try:
        params = load_config(config)
        files = _fileset(params, fileset)
    except ConfettiError as e:
        _fail(e)
    _run(
        list(names),
        params,
        files,
        retries=retries,
        from_step=from_step,
        until_step=until_step,
    )


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
