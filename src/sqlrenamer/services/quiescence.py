"""Move user databases in and out of single-user mode around the rename."""

from typing import List, Sequence

from sqlrenamer.errors import QuiesceFailure, RenamerError
from sqlrenamer.models import AccessState, DatabaseHandle, OperationOutcome
from sqlrenamer.services.retry import RetryExhausted, RetryPolicy
from sqlrenamer.services.sql import SqlService


class QuiescenceController:
    """Drives MULTI_USER -> RESTRICTED_USER -> SINGLE_USER and back.

    Quiescing is retried and fatal once the policy is exhausted. Restoring is
    best-effort: failures are logged and reported, never raised.
    """

    def __init__(self, logger, console, sql_service: SqlService, retry_policy: RetryPolicy):
        self.logger = logger
        self.console = console
        self.sql_service = sql_service
        self.retry_policy = retry_policy

    def quiesce(self, database: DatabaseHandle):
        self.logger.info("Setting %s to single-user mode", database.name)

        def transition():
            self.sql_service.set_single_user(database.name)

        try:
            self.retry_policy.call(
                transition,
                description=f"Single-user transition for '{database.name}'",
                logger=self.logger,
            )
        except RetryExhausted as exc:
            raise QuiesceFailure(database.name, exc.attempts, str(exc.last_error)) from exc

        database.access_state = AccessState.SINGLE_USER

    def quiesce_all(self, databases: Sequence[DatabaseHandle]):
        if not databases:
            self.logger.info("No user databases to quiesce.")
            return

        self.console.print(f"[blue]Quiescing {len(databases)} user database(s)...[/blue]")
        for database in databases:
            self.quiesce(database)
        self.console.print("[green]All user databases are in single-user mode.[/green]")

    def restore(self, database: DatabaseHandle) -> OperationOutcome:
        try:
            self.sql_service.set_access_state(database.name, AccessState.MULTI_USER, rollback_immediate=False)
        except RenamerError as exc:
            self.logger.warning(
                "Could not restore multi-user access for %s. Fix it manually: %s",
                database.name,
                exc,
            )
            return OperationOutcome(target=database.name, succeeded=False, detail=str(exc))

        database.access_state = AccessState.MULTI_USER
        return OperationOutcome(target=database.name, succeeded=True, detail="Restored to MULTI_USER.")

    def restore_all(self, databases: Sequence[DatabaseHandle]) -> List[OperationOutcome]:
        outcomes: List[OperationOutcome] = []
        for database in databases:
            outcomes.append(self.restore(database))

        failed = [outcome.target for outcome in outcomes if not outcome.succeeded]
        if failed:
            self.console.print(
                f"[yellow]Warning:[/yellow] still single-user: {', '.join(failed)}"
            )
        return outcomes
