"""SQL Server management services for SQLRenamer."""

import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from sqlrenamer.constants import (
    DEFAULT_INSTANCE,
    READY_DELAY_SECONDS,
    READY_MAX_RETRIES,
    SYSTEM_BACKUP_DATABASES,
    SYSTEM_DATABASE_MAX_ID,
)
from sqlrenamer.errors import RenamerError
from sqlrenamer.errors_catalog import actionable_error
from sqlrenamer.models import AccessState, DatabaseHandle


def quote_identifier(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    return "N'" + value.replace("'", "''") + "'"


class SqlService:
    """Runs T-SQL against the local instance through sqlcmd."""

    def __init__(
        self,
        logger,
        console,
        run_cmd: Callable,
        instance: str = DEFAULT_INSTANCE,
        sqlcmd: str = "sqlcmd",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.instance = instance or DEFAULT_INSTANCE
        self.sqlcmd = sqlcmd
        self.sleep = sleep

    @property
    def server_address(self) -> str:
        if self.instance.upper() == DEFAULT_INSTANCE:
            return "."
        return f".\\{self.instance}"

    def _build_cmd(self, query: str, database: Optional[str] = None) -> List[str]:
        cmd = [self.sqlcmd, "-S", self.server_address, "-E", "-b", "-h", "-1", "-W"]
        if database:
            cmd.extend(["-d", database])
        cmd.extend(["-Q", f"SET NOCOUNT ON; {query}"])
        return cmd

    def execute_query(self, query: str, database: Optional[str] = None) -> List[str]:
        result = self.run_cmd(self._build_cmd(query, database), check=True, capture_output=True)
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def get_server_name(self) -> str:
        rows = self.execute_query("SELECT @@SERVERNAME;")
        if not rows or rows[0].upper() == "NULL":
            raise RenamerError(
                "Instance did not report a server name. Check `sys.servers` for a local entry."
            )
        return rows[0]

    def list_user_databases(self, names: Optional[Sequence[str]] = None) -> List[DatabaseHandle]:
        rows = self.execute_query(
            "SELECT name + '|' + user_access_desc FROM sys.databases "
            f"WHERE database_id > {SYSTEM_DATABASE_MAX_ID} AND state_desc = 'ONLINE' "
            "ORDER BY database_id;"
        )

        handles: List[DatabaseHandle] = []
        for row in rows:
            name, _, access = row.rpartition("|")
            if not name:
                self.logger.debug("Skipping unexpected sys.databases row: %s", row)
                continue
            try:
                state = AccessState(access.strip().upper())
            except ValueError:
                state = AccessState.MULTI_USER
            handles.append(DatabaseHandle(name=name, access_state=state))

        if not names:
            return handles

        requested = {name.lower() for name in names}
        found = {handle.name.lower() for handle in handles}
        missing = [name for name in names if name.lower() not in found]
        if missing:
            raise RenamerError(actionable_error("unknown_databases", names=", ".join(missing)))
        return [handle for handle in handles if handle.name.lower() in requested]

    def backup_system_databases(self, backup_dir: Optional[str] = None) -> List[str]:
        self.console.print("[blue]Backing up system databases...[/blue]")
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        directory = backup_dir.rstrip("\\/") if backup_dir else ""
        files: List[str] = []

        for database in SYSTEM_BACKUP_DATABASES:
            file_name = f"{database}_{stamp}.bak"
            target = f"{directory}\\{file_name}" if directory else file_name
            self.logger.info("Backing up %s to %s", database, target)
            try:
                self.execute_query(
                    f"BACKUP DATABASE {quote_identifier(database)} "
                    f"TO DISK = {quote_literal(target)} WITH INIT;"
                )
            except RenamerError as exc:
                raise RenamerError(
                    f"{actionable_error('backup_failed', database=database)}\n{exc}"
                ) from exc
            files.append(target)

        self.console.print("[green]System databases backed up.[/green]")
        return files

    def set_access_state(self, database: str, state: AccessState, rollback_immediate: bool = True):
        suffix = " WITH ROLLBACK IMMEDIATE" if rollback_immediate else ""
        self.execute_query(f"ALTER DATABASE {quote_identifier(database)} SET {state.value}{suffix};")

    def set_single_user(self, database: str):
        """Restricted then single-user as one batch, rolling back open transactions."""
        name = quote_identifier(database)
        self.execute_query(
            f"ALTER DATABASE {name} SET {AccessState.RESTRICTED_USER.value} WITH ROLLBACK IMMEDIATE; "
            f"ALTER DATABASE {name} SET {AccessState.SINGLE_USER.value} WITH ROLLBACK IMMEDIATE;"
        )

    def rename_server(self, current_name: str, target_name: str):
        self.console.print(f"[blue]Renaming server {current_name} to {target_name}...[/blue]")
        self.logger.info("Renaming server %s to %s", current_name, target_name)
        try:
            self.execute_query(
                f"EXEC sp_dropserver {quote_literal(current_name)}; "
                f"EXEC sp_addserver {quote_literal(target_name)}, 'local';"
            )
        except RenamerError as exc:
            raise RenamerError(
                f"{actionable_error('rename_failed', current=current_name, target=target_name)}\n{exc}"
            ) from exc

    def wait_until_ready(self, max_retries: int = READY_MAX_RETRIES, delay: float = READY_DELAY_SECONDS):
        self.console.print("[yellow]Waiting for SQL Server to accept connections...[/yellow]")

        last_error: Optional[Exception] = None
        for _ in range(max_retries):
            try:
                self.execute_query("SELECT 1;")
                self.console.print("[green]SQL Server is ready.[/green]")
                return
            except RenamerError as exc:
                last_error = exc
                self.sleep(delay)

        raise RenamerError(f"SQL Server did not become ready after restart: {last_error}")
