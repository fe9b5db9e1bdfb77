"""Thin CLI wrapper for manifest_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from manifest_builder import __version__
from manifest_builder.config import Settings, get_settings, print_settings_json
from manifest_builder.log import configure_logging

app = typer.Typer(
    name="manifest-builder",
    help="Manifest Builder - build packages and containerize environments",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"manifest-builder version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Logging level (overrides settings)"),
    ] = None,
) -> None:
    """Manifest Builder - build packages and containerize environments."""
    configure_logging((log_level or get_settings().log_level).upper())


def _load_builder(settings: Settings):
    from manifest_builder.builds.builder import (
        BuildMk,
        BuildMkConfig,
        BuilderConfigError,
    )

    try:
        return BuildMk(BuildMkConfig.from_settings(settings))
    except BuilderConfigError as e:
        err_console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None


PackagesArg = Annotated[
    list[str] | None,
    typer.Argument(help="Packages to act on (default: all packages)"),
]
BaseDirOption = Annotated[
    Path,
    typer.Option(
        "--dir",
        "-d",
        help="Directory containing the environment",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
]
EnvOption = Annotated[
    Path,
    typer.Option(
        "--env",
        "-e",
        help="Path of the rendered environment",
        exists=True,
        resolve_path=True,
    ),
]


@app.command()
def build(
    env: EnvOption,
    packages: PackagesArg = None,
    base_dir: BaseDirOption = Path("."),
) -> None:
    """Build packages defined in the environment.

    Output of the build driver is streamed as it arrives; the command exits
    with the driver's exit status.
    """
    from manifest_builder.builds.builder import CallBuilderError, result_link
    from manifest_builder.process import Exit, StderrLine, StdoutLine

    builder = _load_builder(get_settings())
    packages = packages or []

    try:
        output = builder.build(base_dir, env, packages)
    except CallBuilderError as e:
        err_console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None

    status: Exit | None = None
    with output:
        for event in output:
            if isinstance(event, StdoutLine):
                console.print(event.line, markup=False, highlight=False)
            elif isinstance(event, StderrLine):
                err_console.print(event.line, markup=False, highlight=False, style="dim")
            else:
                status = event

    if status is None or not status.success:
        returncode = status.returncode if status is not None else 1
        err_console.print(f"[red]✗ Build failed (exit code {returncode})[/red]")
        raise typer.Exit(code=returncode if returncode > 0 else 1)

    console.print("[green]✓ Build succeeded[/green]")
    if packages:
        results = [result_link(base_dir, p) for p in dict.fromkeys(packages)]
    else:
        results = sorted(
            p for p in base_dir.glob("result-*") if not p.name.endswith("-buildCache")
        )
    for link in results:
        if link.is_symlink():
            console.print(f"  {link.name} -> {link.readlink()}")


@app.command()
def clean(
    env: EnvOption,
    packages: PackagesArg = None,
    base_dir: BaseDirOption = Path("."),
) -> None:
    """Clean build results of packages defined in the environment."""
    from manifest_builder.builds.builder import CallBuilderError, CleanError

    builder = _load_builder(get_settings())

    try:
        builder.clean(base_dir, env, packages or [])
    except CallBuilderError as e:
        err_console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None
    except CleanError as e:
        err_console.print(f"[red]✗ {e.message}[/red]")
        if e.stderr:
            err_console.print(e.stderr, markup=False, highlight=False)
        raise typer.Exit(code=1) from None

    console.print("[green]✓ Clean succeeded[/green]")


@app.command()
def containerize(
    source: Annotated[
        Path,
        typer.Option(
            "--source",
            "-s",
            help="Executable streaming the container image to stdout",
            exists=True,
            dir_okay=False,
        ),
    ],
    name: Annotated[str, typer.Option("--name", "-n", help="Image name")],
    file: Annotated[
        str | None,
        typer.Option(
            "--file",
            "-f",
            help="File to write the container image to. '-' to write to stdout.",
        ),
    ] = None,
    runtime: Annotated[
        str | None,
        typer.Option(
            "--runtime",
            help="Container runtime to load the image into. 'docker' or 'podman'",
        ),
    ] = None,
    tag: Annotated[
        str | None,
        typer.Option("--tag", "-t", help="Tag to apply to the container"),
    ] = None,
) -> None:
    """Stream a container image into a file, stdout or a container runtime.

    Defaults to loading into docker or podman if either is on PATH,
    otherwise writes '<name>-container.tar'.
    """
    from manifest_builder.containers import (
        ContainerSource,
        ContainerStreamError,
        OutputTarget,
        SinkError,
        detect_or_default,
    )
    from manifest_builder.containers.target import InvalidRuntimeError, parse_runtime

    if file is not None and runtime is not None:
        err_console.print("[red]--file and --runtime are mutually exclusive[/red]")
        raise typer.Exit(code=1)

    settings = get_settings()

    if file is not None:
        target = OutputTarget.parse_file(file)
    elif runtime is not None:
        try:
            target = OutputTarget.for_runtime(parse_runtime(runtime))
        except InvalidRuntimeError as e:
            err_console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1) from None
    else:
        target = detect_or_default(name)

    container = ContainerSource(source, name, tag or settings.default_tag)

    # stdout carries the image, so status messages go to stderr
    status_console = err_console if target.is_stdout else console

    try:
        sink = target.to_sink()
    except SinkError as e:
        err_console.print(f"[red]✗ Writing container to {target} failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    try:
        container.stream_container(sink)
    except (ContainerStreamError, SinkError) as e:
        sink.abort()
        err_console.print(f"[red]✗ Writing container to {target} failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    try:
        sink.finalize()
    except SinkError as e:
        err_console.print(f"[red]✗ Writing container to {target} failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    status_console.print(f"[green]✓ Container written to {target}[/green]")


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        build_mk_display = str(settings.build_mk) if settings.build_mk else "(not set)"
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Build driver:[/bold]")
        console.print(f"  Make binary:         {settings.gnumake_bin}")
        console.print(f"  Build makefile:      {build_mk_display}")
        console.print(f"  Environment key:     {settings.env_binding_key}")
        console.print()
        console.print("[bold]Containers:[/bold]")
        console.print(f"  Default tag:         {settings.default_tag}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")


if __name__ == "__main__":
    app()
