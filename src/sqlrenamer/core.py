import logging
import os
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console

from .constants import DEFAULT_INSTANCE, QUIESCE_DELAY_SECONDS, QUIESCE_MAX_ATTEMPTS
from .errors import IdentityMismatch, RenameFailure, RenamerError
from .errors_catalog import actionable_error
from .models import Credential, DatabaseHandle, OperationOutcome, RenameReport, ServerIdentity
from .services.alias_store import AliasStore
from .services.alias_sync import AliasSynchronizer
from .services.command_runner import CommandRunner
from .services.quiescence import QuiescenceController
from .services.remote_session import RemoteSessionBroker
from .services.report import ReportService
from .services.retry import RetryPolicy
from .services.service_control import ServiceControl
from .services.sql import SqlService

console = Console()
logger = logging.getLogger("sqlrenamer")

LOCAL_HOST = "localhost"


class ServerRenamer:
    def __init__(
        self,
        new_name: str,
        instance: str = DEFAULT_INSTANCE,
        databases: Optional[Sequence[str]] = None,
        hosts: Optional[Sequence[str]] = None,
        credential: Optional[Credential] = None,
        verbose: bool = False,
        report_file: Optional[str] = None,
        backup_dir: Optional[str] = None,
        sqlcmd: str = "sqlcmd",
        command_timeout: Optional[float] = None,
        quiesce_attempts: int = QUIESCE_MAX_ATTEMPTS,
        quiesce_delay_seconds: float = QUIESCE_DELAY_SECONDS,
        aliases_only: bool = False,
        match_server: Optional[str] = None,
        sleep=time.sleep,
    ):
        if not new_name or not new_name.strip():
            raise RenamerError("New server name must not be empty.")
        if quiesce_attempts < 1:
            raise RenamerError("--quiesce-attempts must be at least 1.")
        if quiesce_delay_seconds < 0:
            raise RenamerError("--quiesce-delay-seconds must not be negative.")

        self.new_name = new_name.strip()
        self.instance = instance or DEFAULT_INSTANCE
        self.databases = list(databases or [])
        self.hosts = list(hosts or [])
        self.credential = credential
        self.verbose = verbose
        self.backup_dir = backup_dir
        self.aliases_only = aliases_only
        self.match_server = match_server
        self.run_id = uuid.uuid4().hex[:10]
        self.report_file = report_file or os.path.join(os.getcwd(), "rename-report.json")
        self.last_report: Optional[RenameReport] = None

        self.command_runner = CommandRunner(logger=logger, default_timeout=command_timeout)
        self.report_service = ReportService(report_file=self.report_file, logger=logger)
        self.sql_service = SqlService(
            logger=logger,
            console=console,
            run_cmd=self._run_cmd,
            instance=self.instance,
            sqlcmd=sqlcmd,
            sleep=sleep,
        )
        self.service_control = ServiceControl(
            logger=logger,
            console=console,
            run_cmd=self._run_cmd,
            instance=self.instance,
        )
        self.quiescence = QuiescenceController(
            logger=logger,
            console=console,
            sql_service=self.sql_service,
            retry_policy=RetryPolicy(
                max_attempts=quiesce_attempts,
                delay=quiesce_delay_seconds,
                sleep=sleep,
            ),
        )
        self.session_broker = RemoteSessionBroker(logger=logger, run_cmd=self._run_cmd)
        self.alias_synchronizer = AliasSynchronizer(
            logger=logger,
            console=console,
            broker=self.session_broker,
            store=AliasStore(logger=logger, run_cmd=self._run_cmd),
        )

    def _run_cmd(self, cmd: List[str], check: bool = True, capture_output: bool = False, **kwargs):
        return self.command_runner.run(cmd, check=check, capture_output=capture_output, **kwargs)

    def _build_metadata(self) -> Dict[str, Any]:
        return {
            "new_name": self.new_name,
            "instance": self.instance,
            "databases": self.databases,
            "hosts": self.hosts,
            "username": self.credential.username if self.credential else None,
            "backup_dir": self.backup_dir,
            "aliases_only": self.aliases_only,
            "match_server": self.match_server,
            "verbose": self.verbose,
        }

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.report_service.step_started(name)
        try:
            result = callback(*args, **kwargs)
        except Exception as exc:
            self.report_service.step_finished(name, "failed", error=str(exc))
            raise
        self.report_service.step_finished(name, "success")
        return result

    def _run_fatal_step(self, report: RenameReport, name: str, callback, *args, **kwargs):
        try:
            return self._run_step(name, callback, *args, **kwargs)
        except RenamerError as exc:
            report.error = str(exc)
            raise RenameFailure(str(exc), step=name, report=report) from exc

    def alias_hosts(self) -> List[str]:
        """Local host first, then each requested remote host in the order given."""
        hosts = [LOCAL_HOST]
        for host in self.hosts:
            if self.session_broker.is_local(host):
                continue
            if host.lower() in (existing.lower() for existing in hosts):
                continue
            hosts.append(host)
        return hosts

    def read_identity(self) -> ServerIdentity:
        current_name = self.sql_service.get_server_name()
        identity = ServerIdentity(current_name=current_name, target_name=self.new_name)
        logger.info("Current server name: %s", identity.current_name)
        if identity.is_noop:
            raise RenamerError(
                f"Server is already named '{identity.current_name}'. "
                "Use --aliases-only to resynchronize client aliases."
            )
        return identity

    def discover_databases(self) -> List[DatabaseHandle]:
        databases = self.sql_service.list_user_databases(self.databases or None)
        logger.info("User databases: %s", ", ".join(db.name for db in databases) or "<none>")
        return databases

    def restart_service(self, identity: ServerIdentity):
        try:
            self.service_control.restart()
            self.sql_service.wait_until_ready()
        except RenamerError as exc:
            hint = actionable_error(
                "restart_failed",
                service=self.service_control.service_name,
                target=identity.target_name,
            )
            raise RenamerError(f"{hint}\n{exc}") from exc
        self.service_control.start_agent()

    def verify_identity(self, identity: ServerIdentity):
        actual = self.sql_service.get_server_name()
        if actual.strip().lower() != identity.target_name.lower():
            raise IdentityMismatch(expected=identity.target_name, actual=actual)
        console.print(f"[green]Instance now reports {actual}.[/green]")

    def sync_aliases_across_hosts(
        self,
        hosts: Sequence[str],
        target_name: str,
        credential: Optional[Credential] = None,
    ) -> List[OperationOutcome]:
        return self.alias_synchronizer.sync_hosts(
            hosts,
            target_name,
            credential,
            match_server=self.match_server,
        )

    def run_rename(self) -> RenameReport:
        """Renames the instance and synchronizes aliases.

        Raises RenameFailure for any fatal step; restore and alias failures only show
        up in the returned report.
        """
        report = RenameReport()
        self.last_report = report

        identity = self._run_fatal_step(report, "read_server_identity", self.read_identity)
        report.identity = identity
        databases = self._run_fatal_step(report, "discover_databases", self.discover_databases)
        report.databases = [database.name for database in databases]

        self._run_fatal_step(report, "backup_system_databases", self.sql_service.backup_system_databases, self.backup_dir)
        self._run_fatal_step(report, "quiesce_databases", self.quiescence.quiesce_all, databases)
        self._run_fatal_step(
            report,
            "rename_server",
            self.sql_service.rename_server,
            identity.current_name,
            identity.target_name,
        )
        report.renamed = True
        self._run_fatal_step(report, "restart_service", self.restart_service, identity)
        self._run_fatal_step(report, "verify_server_name", self.verify_identity, identity)
        report.verified = True

        report.restore_outcomes = self._run_step(
            "restore_database_access",
            self.quiescence.restore_all,
            databases,
        )
        report.alias_outcomes = self._run_step(
            "sync_aliases",
            self.sync_aliases_across_hosts,
            self.alias_hosts(),
            identity.target_name,
            self.credential,
        )
        return report

    def run_aliases_only(self) -> RenameReport:
        report = RenameReport()
        self.last_report = report
        report.alias_outcomes = self._run_step(
            "sync_aliases",
            self.sync_aliases_across_hosts,
            self.alias_hosts(),
            self.new_name,
            self.credential,
        )
        return report

    def _print_summary(self, report: RenameReport):
        if report.renamed:
            console.print(
                f"[bold green]Server renamed from {report.identity.current_name} "
                f"to {report.identity.target_name}.[/bold green]"
            )

        for outcome in report.restore_failures:
            console.print(f"[yellow]Database {outcome.target} is still single-user:[/yellow] {outcome.detail}")

        updated = len(report.alias_outcomes) - len(report.alias_failures)
        console.print(f"[green]{updated} alias update(s) succeeded.[/green]")
        for outcome in report.alias_failures:
            console.print(f"[yellow]Alias update failed for {outcome.target}:[/yellow] {outcome.detail}")

    def run(self) -> int:
        exit_code = 1
        report_status = "failed"
        report_error: Optional[str] = None

        try:
            logger.info("Starting SQLRenamer...")
            self.report_service.start_run(run_id=self.run_id, metadata=self._build_metadata())

            if self.aliases_only:
                report = self.run_aliases_only()
            else:
                report = self.run_rename()

            self._print_summary(report)
            if report.restore_failures or report.alias_failures:
                report_status = "completed_with_warnings"
            else:
                report_status = "success"
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            report_status = "aborted"
            report_error = "Operation cancelled by user."
            return exit_code
        except RenameFailure as exc:
            console.print(f"[bold red]Error during {exc.step}:[/bold red] {exc}")
            logger.error("Step '%s' failed: %s", exc.step, exc)
            report_error = str(exc)
            return exit_code
        except RenamerError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            report_error = str(exc)
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            report_error = str(exc)
            return exit_code
        finally:
            if self.last_report is not None:
                if report_error and self.last_report.error is None:
                    self.last_report.error = report_error
                self.report_service.set_result(self.last_report)
            self.report_service.finalize(report_status, error=report_error)
            logger.info("Report written to %s", self.report_file)
