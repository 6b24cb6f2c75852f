import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .checker import UpdateReport, get_update_checker
from .cli_config import (
    ComprehensiveConfig,
    apply_config_section,
    create_sample_config,
    get_config,
    load_config,
    load_config_file,
    validate_config_values,
)
from .error_handling import setup_error_handling
from .manifest import (
    collect_dependencies,
    locate_manifest,
    patch_manifest,
    read_manifest,
    write_manifest,
)
from .reporting import (
    UP_TO_DATE_MESSAGE,
    UPDATED_MESSAGE,
    UpdateReporter,
    build_json_payload,
    error_message,
)
from .resolver import Policy, parse_selection
from .structured_logging import configure_logging

console = Console(highlight=False)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_POLICY = 2


def _split_list(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [item for item in value.split(",") if item]


def _make_console(color: bool, no_color: bool) -> Console:
    if no_color:
        return Console(highlight=False, no_color=True)
    if color:
        return Console(highlight=False, force_terminal=True)
    return Console(highlight=False)


def _exit_code(report: Optional[UpdateReport], error_on_outdated: bool, error_on_unchanged: bool) -> int:
    if report is None:
        return EXIT_ERROR
    if error_on_outdated:
        return EXIT_POLICY if report.has_updates else EXIT_OK
    if error_on_unchanged:
        return EXIT_OK if report.has_updates else EXIT_POLICY
    return EXIT_OK


def _emit(
    reporter: UpdateReporter,
    json_output: bool,
    report: Optional[UpdateReport],
    message: Optional[str] = None,
    error: Optional[BaseException] = None,
) -> None:
    if json_output:
        error_text = error_message(error) if error is not None else None
        click.echo(json.dumps(build_json_payload(report, message=message, error=error_text)))
        return

    if report is not None and report.results:
        reporter.print_results(report)
    if error is not None:
        reporter.print_error(error)
    elif message == UPDATED_MESSAGE:
        reporter.print_updated()
    elif message:
        reporter.console.print(message)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    dep-bumper: check package.json dependencies for newer versions.

    Queries the npm registry (or the registries configured in .npmrc) and
    picks the next version for each dependency according to the selected
    update policy.
    """
    if version:
        console.print(f"dep-bumper version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def _package_option(*names: str, help: str):
    return click.option(
        *names,
        is_flag=False,
        flag_value="",
        default=None,
        metavar="[PKGS]",
        help=help,
    )


@cli.command()
@click.option("-u", "--update", is_flag=True, help="Update versions and write package.json")
@_package_option("-p", "--prerelease", help="Consider prerelease versions")
@_package_option("-R", "--release", help="Only use release versions, may downgrade")
@_package_option("-g", "--greatest", help="Prefer greatest over latest version")
@click.option("-i", "--include", metavar="PKGS", help="Include only given packages")
@click.option("-e", "--exclude", metavar="PKGS", help="Exclude given packages")
@click.option("-t", "--types", metavar="TYPES", help="Check only given dependency types")
@_package_option("-P", "--patch", help="Consider only up to semver-patch")
@_package_option("-m", "--minor", help="Consider only up to semver-minor")
@_package_option("-d", "--allow-downgrade", help="Allow version downgrades when using latest version")
@click.option("-E", "--error-on-outdated", is_flag=True, help="Exit with code 2 when updates are available")
@click.option("-U", "--error-on-unchanged", is_flag=True, help="Exit with code 2 when no updates are available")
@click.option("-r", "--registry", metavar="URL", help="Override npm registry URL")
@click.option("-f", "--file", "file_path", type=click.Path(), help="Use given package.json file or module directory")
@click.option("-S", "--sockets", type=int, help="Maximum number of parallel HTTP sockets (default from config or 64)")
@click.option("-j", "--json", "json_output", is_flag=True, help="Output a JSON object")
@click.option("-c", "--color", is_flag=True, help="Force-enable color output")
@click.option("-n", "--no-color", is_flag=True, help="Disable color output")
@click.option("-v", "--verbose", is_flag=True, help="Emit debug logging on stderr")
def check(
    update: bool,
    prerelease: Optional[str],
    release: Optional[str],
    greatest: Optional[str],
    include: Optional[str],
    exclude: Optional[str],
    types: Optional[str],
    patch: Optional[str],
    minor: Optional[str],
    allow_downgrade: Optional[str],
    error_on_outdated: bool,
    error_on_unchanged: bool,
    registry: Optional[str],
    file_path: Optional[str],
    sockets: Optional[int],
    json_output: bool,
    color: bool,
    no_color: bool,
    verbose: bool,
) -> None:
    """
    Check package.json dependencies for available updates.

    Options marked [PKGS] apply to all packages when given without a value,
    or only to the comma-separated packages given.

    Examples:

      dep-bumper check

      dep-bumper check -u -m

      dep-bumper check -g -p react,react-dom --json
    """
    config = load_config()
    log_level = "DEBUG" if verbose else config.logging.log_level
    configure_logging(
        log_level,
        config.logging.log_file_path if config.logging.enable_file_logging else None,
    )
    setup_error_handling(getattr(logging, log_level.upper(), logging.WARNING))

    reporter = UpdateReporter(_make_console(color, no_color))

    max_sockets = sockets if sockets is not None else config.update.max_sockets
    if max_sockets <= 0:
        raise click.ClickException("Sockets must be positive")

    report: Optional[UpdateReport] = None
    try:
        manifest_path = locate_manifest(file_path)
        text, data = read_manifest(manifest_path)
        dependencies = collect_dependencies(
            data,
            _split_list(types) or config.update.dependency_types,
            include=_split_list(include),
            exclude=_split_list(exclude),
        )

        policy = Policy(
            prerelease=parse_selection(prerelease),
            greatest=parse_selection(greatest),
            release_only=parse_selection(release),
            allow_downgrade=parse_selection(allow_downgrade),
            patch=parse_selection(patch),
            minor=parse_selection(minor),
        )
        checker = get_update_checker(policy, registry=registry, max_sockets=max_sockets)
        report = asyncio.run(checker.check(dependencies, str(manifest_path)))

        if not report.has_updates:
            _emit(reporter, json_output, report, message=UP_TO_DATE_MESSAGE)
        elif update:
            write_manifest(manifest_path, patch_manifest(text, report.manifest_updates))
            _emit(reporter, json_output, report, message=UPDATED_MESSAGE)
        else:
            _emit(reporter, json_output, report)

    except KeyboardInterrupt:
        Console(stderr=True).print("\n⚠️  Interrupted by user", style="yellow")
        sys.exit(130)
    except Exception as e:
        _emit(reporter, json_output, report, error=e)
        sys.exit(EXIT_ERROR)

    sys.exit(_exit_code(report, error_on_outdated, error_on_unchanged))


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".dep-bumper.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        raise click.ClickException(f"Failed to create config file: {e}")

    console.print(f"✅ Created configuration file at {config_path}", style="green")


@config.command("show")
def config_show():
    """Show the effective configuration."""
    current_config = get_config()

    console.print(Panel("[bold blue]🔧 dep-bumper Configuration[/bold blue]", border_style="blue"))

    console.print("\n[bold cyan]📦 Update Settings:[/bold cyan]")
    console.print(f"  Max Sockets: {current_config.update.max_sockets}")
    console.print(f"  Dependency Types: {', '.join(current_config.update.dependency_types)}")
    console.print(f"  Retry Default Registry: {current_config.update.retry_default_registry}")

    console.print("\n[bold cyan]🌐 Network Settings:[/bold cyan]")
    console.print(f"  Default Registry: {current_config.network.default_registry}")
    console.print(f"  GitHub API: {current_config.network.github_api_url}")
    console.print(f"  Connect Timeout: {current_config.network.connect_timeout}s")
    console.print(f"  Read Timeout: {current_config.network.read_timeout}s")
    console.print(f"  User Agent: {current_config.network.user_agent}")

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")
    console.print(f"  File Logging: {current_config.logging.enable_file_logging}")

    console.print("\n[bold cyan]⚡ Performance Settings:[/bold cyan]")
    console.print(f"  Caching Enabled: {current_config.performance.enable_caching}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True))
def config_validate(config_file: str):
    """Validate a configuration file."""
    config_data = load_config_file(Path(config_file))

    if not isinstance(config_data, dict):
        console.print(f"❌ Could not load config from {config_file}", style="red")
        sys.exit(EXIT_ERROR)

    candidate = ComprehensiveConfig()
    for section_name in ("update", "network", "logging", "performance"):
        section_data = config_data.get(section_name)
        if isinstance(section_data, dict):
            apply_config_section(getattr(candidate, section_name), section_data, section_name)

    try:
        errors = validate_config_values(candidate)
    except (TypeError, AttributeError) as e:
        errors = [f"Invalid value type: {e}"]

    if errors:
        console.print("❌ Configuration validation failed:", style="red")
        for error in errors:
            console.print(f"  • {error}", style="red")
        sys.exit(EXIT_ERROR)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
