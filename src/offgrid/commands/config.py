"""``offgrid config``: show the effective settings and edit the config file.

``show`` prints what commands actually run with, environment overrides
and ``--cache-dir`` included.  ``set`` and ``reset`` only change
``config.json``.
"""

from __future__ import annotations

import typer

from offgrid.commands import confirm, load_command_config
from offgrid.output import error, get_output, info

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the effective configuration.

    Example::

        offgrid --json config show
    """
    from offgrid.config import config_path

    config = load_command_config(ctx)
    info(f"Config file: {config_path()}")
    get_output().print_document(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="SECTION.FIELD, e.g. request.base_url"),
    value: str = typer.Argument(help="New value; 'none' clears an optional field."),
) -> None:
    """Change one setting in the config file.

    The value is validated with the same rules used when the file is
    loaded, so ``cache.memory_max_entries many`` is rejected.

    Example::

        offgrid config set request.base_url https://api.example.com
        offgrid config set monitor.assume_connected yes
    """
    from pydantic import BaseModel, ValidationError

    from offgrid.config import load_global_config, save_global_config
    from offgrid.exceptions import ConfigError
    from offgrid.models import GlobalConfig

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None

    section, _, name = key.partition(".")
    group = getattr(config, section, None) if section in GlobalConfig.model_fields else None
    if not isinstance(group, BaseModel) or name not in type(group).model_fields:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    data = config.model_dump()
    data[section][name] = None if value.lower() in ("none", "null") else value
    try:
        updated = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Invalid value for {key}: {exc.errors()[0]['msg']}")
        raise typer.Exit(code=2) from None

    save_global_config(updated)
    info(f"Set {key} = {getattr(getattr(updated, section), name)}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Restore the default configuration.

    Example::

        offgrid --force config reset
    """
    from offgrid.config import save_global_config
    from offgrid.models import GlobalConfig

    confirm(ctx, "Reset all settings to their defaults?")
    save_global_config(GlobalConfig())
    info("Configuration reset to defaults.")
