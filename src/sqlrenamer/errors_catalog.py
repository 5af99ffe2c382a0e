"""Actionable error catalog for SQLRenamer."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "backup_failed": {
        "what": "Backup of system database '{database}' failed. No changes were made.",
        "next": "Check free space and permissions on the backup directory or pass `--backup-dir`.",
    },
    "quiesce_exhausted": {
        "what": "Database '{database}' stayed busy after {attempts} attempt(s).",
        "next": "Stop the applications connected to it, set any already single-user "
        "databases back with `ALTER DATABASE ... SET MULTI_USER`, then retry.",
    },
    "rename_failed": {
        "what": "Renaming server '{current}' to '{target}' failed.",
        "next": "User databases are still in single-user mode. Inspect the SQL error, "
        "then run `ALTER DATABASE ... SET MULTI_USER` for each before retrying.",
    },
    "restart_failed": {
        "what": "Restarting service '{service}' failed after the rename.",
        "next": "Start the service manually and verify `SELECT @@SERVERNAME` returns '{target}'.",
    },
    "identity_mismatch": {
        "what": "The instance reports '{actual}' instead of '{target}' after restart.",
        "next": "Check `sys.servers` for a stale local entry and re-run the rename.",
    },
    "unknown_databases": {
        "what": "Requested databases not found on the instance: {names}",
        "next": "Check the `--database` values against `sys.databases`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
