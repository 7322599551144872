"""Configuration management CLI commands."""

import json

import typer
import yaml

from checkin.config import Settings, get_settings

config_app = typer.Typer(
    name="config",
    help="Configuration management - view settings and how to change them.",
    no_args_is_help=True,
)

SETTABLE_KEYS = {
    "collector_url",
    "delivery_timeout",
    "decode_interval",
    "dedup_window",
    "result_display_delay",
    "probe_interval",
    "assume_online",
    "camera_index",
    "store_backend",
    "data_dir",
    "station_id",
    "log_level",
    "log_file",
}


def _config_data(settings: Settings) -> dict:
    return {
        "collector_url": settings.collector_url,
        "delivery_timeout": settings.delivery_timeout,
        "decode_interval": settings.decode_interval,
        "dedup_window": settings.dedup_window,
        "result_display_delay": settings.result_display_delay,
        "probe_interval": settings.probe_interval,
        "assume_online": settings.assume_online,
        "camera_index": settings.camera_index,
        "store_backend": settings.store_backend,
        "store_path": str(settings.store_path),
        "station_id": settings.station_id,
        "log_level": settings.log_level,
        "log_file": str(settings.log_file) if settings.log_file else None,
    }


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current configuration."""
    config_data = _config_data(get_settings())

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
    else:
        typer.echo("")
        typer.echo("Check-in Configuration")
        typer.echo("----------------------")
        typer.echo(yaml.safe_dump(config_data, default_flow_style=False, sort_keys=False).rstrip())
        typer.echo("")
        typer.echo("Set values using environment variables with CHECKIN_ prefix")
        typer.echo("Example: CHECKIN_DEDUP_WINDOW=5")


@config_app.command(name="set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key to set"),
    value: str = typer.Argument(..., help="Value to set"),
) -> None:
    """Show how to set a configuration value.

    Configuration is environment-based; this prints the variable to export
    or add to a .env file.
    """
    if key not in SETTABLE_KEYS:
        typer.echo(f"Unknown key: {key}")
        typer.echo(f"Valid keys: {', '.join(sorted(SETTABLE_KEYS))}")
        raise typer.Exit(1)

    env_key = f"CHECKIN_{key.upper()}"
    typer.echo(f"To set {key}={value}, add to your environment:")
    typer.echo(f"  export {env_key}={value}")
    typer.echo("")
    typer.echo("Or add to .env in the working directory:")
    typer.echo(f"  {env_key}={value}")
