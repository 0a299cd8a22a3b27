"""CLI entry point for running provider operations from a config file.

Examples:

    # Validate a vendor configuration
    $ dynprov validate -c config/5sim.yaml

    # Run an operation and print the canonical records
    $ dynprov run -c config/5sim.yaml getPrices -p country=russia

    # Save the result as JSON
    $ dynprov run -c config/5sim.yaml getCountries --json out/countries.json
"""

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from dynprov.exceptions import (
    ConfigurationError,
    DynamicProviderError,
    MissingFieldError,
    ProviderApiError,
    ProviderError,
)
from dynprov.models.config import ConfigManager, EngineSettings, ProviderConfig
from dynprov.models.data_models import OperationResult
from dynprov.pipeline.output import JSONOutputFormatter
from dynprov.provider.dynamic_provider import DynamicProvider


console = Console()

MAX_TABLE_COLUMNS = 8


def parse_params(values: Tuple[str, ...]) -> Dict[str, str]:
    """Turn repeated ``key=value`` options into a dict."""
    params = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got: {item}", param_hint="--param")
        params[key.strip()] = value
    return params


@click.group()
@click.version_option(version="1.0.0", prog_name="dynprov")
def cli() -> None:
    """Dynamic Provider - config-driven adapters for SMS number vendors."""


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default="config/5sim.yaml",
    help="Path to the vendor configuration (YAML or JSON)",
)
@click.argument("operation")
@click.option(
    "--param",
    "-p",
    "params",
    multiple=True,
    help="Operation parameter as key=value (repeatable)",
)
@click.option(
    "--json",
    "json_path",
    type=click.Path(path_type=Path),
    help="Write the result to this JSON file",
)
@click.option(
    "--timeout",
    "-t",
    type=float,
    help="Per-attempt HTTP timeout in seconds (overrides config)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
def run(
    config: Path,
    operation: str,
    params: Tuple[str, ...],
    json_path: Optional[Path],
    timeout: Optional[float],
    log_level: Optional[str],
) -> None:
    """Run OPERATION against the configured vendor and print its records."""
    try:
        cli_overrides: Dict[str, Any] = {}
        if timeout is not None:
            cli_overrides["request_timeout"] = timeout
        if log_level is not None:
            cli_overrides["log_level"] = log_level.upper()

        config_manager = ConfigManager(config)
        settings = config_manager.load_settings(cli_overrides)
        provider_config = config_manager.load_provider()
        operation_params = parse_params(params)

        result = asyncio.run(_run_operation(provider_config, settings, operation, operation_params))

        _display_records(result)
        if json_path:
            JSONOutputFormatter().save(result, str(json_path))
            console.print(f"[bold]Output saved to:[/bold] {json_path}")

    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)
    except ProviderError as e:
        console.print(f"[yellow]Provider error ({e.error_type.value}):[/yellow] {e}")
        sys.exit(1)
    except MissingFieldError as e:
        console.print(f"[red]Unparsable response:[/red] {e}")
        sys.exit(1)
    except ProviderApiError as e:
        console.print(f"[red]API error:[/red] {e} (url: {e.url})")
        sys.exit(1)
    except DynamicProviderError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default="config/5sim.yaml",
    help="Path to the vendor configuration (YAML or JSON)",
)
def validate(config: Path) -> None:
    """Check a vendor configuration and summarize its operations."""
    try:
        config_manager = ConfigManager(config)
        config_manager.load_settings()
        provider_config = config_manager.load_provider()
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(2)

    _display_config_summary(provider_config)

    for warning in config_warnings(provider_config):
        console.print(f"[yellow]warning:[/yellow] {warning}")
    console.print(f"[green]✓ {provider_config.name} configuration is valid[/green]")


def config_warnings(config: ProviderConfig) -> List[str]:
    """Non-fatal problems worth pointing out to a config author."""
    warnings = []
    for operation in config.endpoints:
        if operation not in config.mappings:
            warnings.append(f"{operation} has no mapping; responses will be auto-parsed")
    for operation in config.mappings:
        if operation not in config.endpoints:
            warnings.append(f"{operation} has a mapping but no endpoint")
    for operation, mapping in config.mappings.items():
        if mapping.type.value == "text_regex" and not mapping.regex:
            warnings.append(f"{operation} is text_regex but declares no regex")
    return warnings


async def _run_operation(
    provider_config: ProviderConfig,
    settings: EngineSettings,
    operation: str,
    params: Dict[str, str],
) -> OperationResult:
    """Run one operation with a short-lived adapter."""
    async with DynamicProvider(provider_config, settings=settings) as provider:
        records = await provider.perform_operation(operation, params)
        return OperationResult(
            provider=provider.name,
            operation=operation,
            params=params,
            records=records,
            trace=provider.last_request_trace,
            executed_at=datetime.now(timezone.utc).isoformat(),
        )


def _display_config_summary(config: ProviderConfig) -> None:
    console.print(f"\n[bold cyan]{config.name}[/bold cyan] ({config.api_base_url or 'absolute paths'})")
    console.print(f"  Auth: {config.auth_type.value}")
    console.print(f"  Rate limit: {config.rate_limit_delay_ms:.0f}ms between requests")

    table = Table(title="Operations")
    table.add_column("Operation", style="cyan")
    table.add_column("Method")
    table.add_column("Path")
    table.add_column("Mapping", style="green")

    for operation in sorted(set(config.endpoints) | set(config.mappings)):
        endpoint = config.endpoints.get(operation)
        mapping = config.mappings.get(operation)
        table.add_row(
            operation,
            endpoint.method if endpoint else "-",
            endpoint.path if endpoint else "-",
            mapping.type.value if mapping else "auto",
        )

    console.print(table)


def _display_records(result: OperationResult) -> None:
    console.print(f"\n[bold green]{result.provider} {result.operation}[/bold green]: {len(result.records)} records\n")
    if not result.records:
        return

    columns: List[str] = []
    for record in result.records:
        for key in record:
            if key not in columns:
                columns.append(key)

    table = Table()
    for column in columns[:MAX_TABLE_COLUMNS]:
        table.add_column(column)
    for record in result.records:
        table.add_row(*(
            "" if record.get(column) is None else str(record.get(column))
            for column in columns[:MAX_TABLE_COLUMNS]
        ))

    console.print(table)


if __name__ == "__main__":
    cli()
