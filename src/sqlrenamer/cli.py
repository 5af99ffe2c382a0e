import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_INSTANCE, QUIESCE_DELAY_SECONDS, QUIESCE_MAX_ATTEMPTS
from .core import ServerRenamer
from .errors import RenamerError
from .models import Credential
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _resolve_list(cli_values, config, key):
    if cli_values:
        return list(cli_values)
    return list(config.get(key) or [])


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option("--new-name", required=False, help="New server name (e.g. NEW-SQL or NEW-SQL\\INSTANCE)")
@click.option(
    "--instance",
    required=False,
    help=f"Local SQL Server instance name (default: {DEFAULT_INSTANCE})",
)
@click.option(
    "--database",
    "databases",
    multiple=True,
    help="User database to quiesce. Repeat for several. Defaults to every online user database.",
)
@click.option(
    "--host",
    "hosts",
    multiple=True,
    help="Remote host whose client aliases should be updated. Repeat for several.",
)
@click.option("--username", required=False, help="Account used to connect to remote hosts.")
@click.option(
    "--password",
    required=False,
    envvar="SQLRENAMER_PASSWORD",
    help="Password for --username (or set SQLRENAMER_PASSWORD).",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .sqlrenamer.yml if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--report-file",
    required=False,
    type=click.Path(),
    help="Path to the JSON run report (default: ./rename-report.json).",
)
@click.option(
    "--backup-dir",
    required=False,
    help="Directory on the server for system database backups (default: instance backup directory).",
)
@click.option("--sqlcmd", required=False, help="Path to the sqlcmd executable.")
@click.option(
    "--command-timeout",
    required=False,
    type=float,
    default=None,
    help="Timeout in seconds for each external command.",
)
@click.option(
    "--quiesce-attempts",
    required=False,
    type=int,
    default=None,
    help=f"Attempts to put each database in single-user mode (default: {QUIESCE_MAX_ATTEMPTS}).",
)
@click.option(
    "--quiesce-delay-seconds",
    required=False,
    type=float,
    default=None,
    help=f"Delay between single-user attempts (default: {QUIESCE_DELAY_SECONDS:g}).",
)
@click.option(
    "--aliases-only",
    is_flag=True,
    default=None,
    help="Skip the rename and only point client aliases at --new-name.",
)
@click.option(
    "--match-server",
    required=False,
    help="Only rewrite aliases that currently point at this server name.",
)
def main(
    new_name,
    instance,
    databases,
    hosts,
    username,
    password,
    config,
    verbose,
    log_file,
    report_file,
    backup_dir,
    sqlcmd,
    command_timeout,
    quiesce_attempts,
    quiesce_delay_seconds,
    aliases_only,
    match_server,
):
    """Rename a SQL Server instance and update client aliases across hosts."""
    logger = logging.getLogger("sqlrenamer")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), ".sqlrenamer.yml")
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except RenamerError as exc:
        raise click.ClickException(str(exc)) from exc

    new_name = _resolve_option(new_name, config_values, "new_name")
    instance = str(_resolve_option(instance, config_values, "instance", default=DEFAULT_INSTANCE))
    databases = _resolve_list(databases, config_values, "databases")
    hosts = _resolve_list(hosts, config_values, "hosts")
    username = _resolve_option(username, config_values, "username")
    password = _resolve_option(password, config_values, "password")
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    report_file = _resolve_option(report_file, config_values, "report_file")
    backup_dir = _resolve_option(backup_dir, config_values, "backup_dir")
    sqlcmd = str(_resolve_option(sqlcmd, config_values, "sqlcmd", default="sqlcmd"))
    command_timeout = _resolve_option(command_timeout, config_values, "command_timeout")
    if command_timeout is not None:
        command_timeout = float(command_timeout)
    quiesce_attempts = int(
        _resolve_option(quiesce_attempts, config_values, "quiesce_attempts", default=QUIESCE_MAX_ATTEMPTS)
    )
    quiesce_delay_seconds = float(
        _resolve_option(
            quiesce_delay_seconds,
            config_values,
            "quiesce_delay_seconds",
            default=QUIESCE_DELAY_SECONDS,
        )
    )
    aliases_only = bool(_resolve_option(aliases_only, config_values, "aliases_only", default=False))
    match_server = _resolve_option(match_server, config_values, "match_server")

    if not new_name:
        raise click.ClickException("Missing required option '--new-name' (or provide it in config).")
    if password and not username:
        raise click.ClickException("'--password' requires '--username'.")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    credential = Credential(username=username, password=password or "") if username else None

    try:
        renamer = ServerRenamer(
            new_name=new_name,
            instance=instance,
            databases=databases,
            hosts=hosts,
            credential=credential,
            verbose=verbose,
            report_file=report_file,
            backup_dir=backup_dir,
            sqlcmd=sqlcmd,
            command_timeout=command_timeout,
            quiesce_attempts=quiesce_attempts,
            quiesce_delay_seconds=quiesce_delay_seconds,
            aliases_only=aliases_only,
            match_server=match_server,
        )
    except RenamerError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(renamer.run())


if __name__ == "__main__":
    main()
