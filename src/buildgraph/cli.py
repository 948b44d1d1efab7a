# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from buildgraph import git
from buildgraph.dag import ConfigurationError, resolve
from buildgraph.model import RunState
from buildgraph.runner import LoadedBuild, Services, load_build, run_build, with_builtins
from buildgraph.ui.console import Console, get_console, set_console
from buildgraph.workflows.generator import check_workflows, generate_workflows


def find_build_files() -> list[Path]:
    """
    Find build files in the current directory.

    Returns:
        build.py if present, otherwise every *_build.py
    """
    current_dir = Path(".")
    default_build = current_dir / "build.py"
    if default_build.exists():
        return [default_build]
    return sorted(current_dir.glob("*_build.py"))


def discover_build(build_arg: str | None) -> Path:
    """
    Discover the build file from argument or default.

    Raises:
        SystemExit: If no build file can be found or several exist
    """
    console = get_console()

    if build_arg:
        build_path = Path(build_arg)
        if not build_path.exists() and build_path.suffix != ".py":
            build_path = Path(str(build_path) + ".py")
        if not build_path.exists():
            console.print_error(
                "Build file not found",
                f"Could not find build file: {build_arg}",
                suggestion="Create a build file or specify a different path:\n  buildgraph run Build --build my_build.py",
            )
            sys.exit(1)
        return build_path

    build_files = find_build_files()

    if len(build_files) == 0:
        console.print_error(
            "No build file found",
            "Could not find any build files.",
            details=["Looked for:", "  build.py", "  *_build.py"],
            suggestion="Create a build file:\n  build.py\n\nOr specify one explicitly:\n  buildgraph run Build --build my_build.py",
        )
        sys.exit(1)

    if len(build_files) > 1:
        console.print_error(
            "Multiple build files found",
            "Found multiple build files. Please specify which one to use:",
            details=[f"  {f}" for f in build_files],
            suggestion="Specify a build explicitly:\n  buildgraph run Build --build ci_build.py",
        )
        sys.exit(1)

    return build_files[0]


def _load(ctx, build: str | None) -> LoadedBuild:
    console = get_console()
    build_path = discover_build(build)
    try:
        loaded = load_build(build_path)
    except Exception as e:
        console.print_error(
            "Failed to load build",
            f"Could not load build from {build_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)
    definitions, catalog = with_builtins(loaded.definitions, loaded.catalog)
    return LoadedBuild(loaded.path, definitions, catalog, loaded.workflows)


def _resolve_or_exit(loaded: LoadedBuild, targets=(), skip: bool = False):
    try:
        return resolve(loaded.definitions, targets, skip_dependencies=skip)
    except ConfigurationError as e:
        get_console().print_error(
            "Invalid build configuration",
            str(e),
            details=[f"Target: {t}" for t in dict.fromkeys(e.targets)] or None,
        )
        sys.exit(1)


def _parse_params(values: tuple[str, ...]) -> dict[str, str]:
    out: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {raw!r}", param_hint="--param")
        out[key.strip()] = value
    return out


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """buildgraph: declarative build targets, run locally or compiled to CI workflows."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("targets", nargs=-1, required=True)
@click.option("--build", default=None, help="Build file path (defaults to build.py if present)")
@click.option("--skip", is_flag=True, default=False, help="Run only the named targets, not their dependencies")
@click.option("--headless", is_flag=True, default=False, help="Non-interactive CI mode (grouped log output)")
@click.option("--param", "params", multiple=True, metavar="KEY=VALUE", help="Param value by argument name")
@click.pass_context
def run(ctx, targets, build, skip, headless, params):
    """Run TARGETS and (unless --skip) everything they depend on."""
    console = get_console()
    console.headless = headless
    cli_args = _parse_params(params)

    loaded = _load(ctx, build)

    known = {d.name for d in loaded.definitions}
    unknown = [t for t in targets if t not in known]
    if unknown:
        console.print_error(
            "Unknown target",
            f"No target named {', '.join(repr(t) for t in unknown)}.",
            suggestion="List the available targets:\n  buildgraph list",
        )
        sys.exit(2)

    model = _resolve_or_exit(loaded, targets, skip)

    try:
        services = Services.create(".", loaded.catalog, cli_args)
        console.print_run_started(
            repository=git.repo_name() or Path(".").resolve().name,
            build_file=loaded.path.name,
            requested=targets,
            target_count=sum(1 for s in model.states.values() if s.status is RunState.PENDING_RUN),
        )
        result = run_build(model, targets, services, console)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option("--build", default=None, help="Build file path (defaults to build.py if present)")
@click.pass_context
def gen(ctx, build):
    """Write workflow files for every workflow and backend."""
    console = get_console()
    loaded = _load(ctx, build)
    model = _resolve_or_exit(loaded)

    try:
        written = generate_workflows(model, loaded.workflows, loaded.catalog, ".")
    except (ConfigurationError, ValueError) as e:
        console.print_error("Workflow generation failed", str(e))
        sys.exit(1)

    for path in written:
        console.print_info(f"wrote {path}")
    if not written:
        console.print_info("All workflow files are up to date.")


@cli.command()
@click.option("--build", default=None, help="Build file path (defaults to build.py if present)")
@click.pass_context
def check(ctx, build):
    """Exit non-zero if any workflow file is missing or out of date."""
    console = get_console()
    loaded = _load(ctx, build)
    model = _resolve_or_exit(loaded)

    try:
        stale = check_workflows(model, loaded.workflows, loaded.catalog, ".")
    except (ConfigurationError, ValueError) as e:
        console.print_error("Workflow check failed", str(e))
        sys.exit(1)

    if stale:
        console.print_error(
            "Workflow files are out of date",
            "These files do not match the build definition:",
            details=[str(p) for p in stale],
            suggestion="Regenerate them:\n  buildgraph gen",
        )
        sys.exit(1)
    console.print_info("All workflow files are up to date.")


@cli.command(name="list")
@click.option("--build", default=None, help="Build file path (defaults to build.py if present)")
@click.pass_context
def list_targets(ctx, build):
    """List visible targets."""
    loaded = _load(ctx, build)
    model = _resolve_or_exit(loaded)
    get_console().print_targets((t.name, t.description) for t in model.targets if not t.hidden)


if __name__ == "__main__":
    cli()
