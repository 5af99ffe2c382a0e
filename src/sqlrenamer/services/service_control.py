"""Windows service control for the SQL Server instance."""

from typing import Callable

from sqlrenamer.constants import DEFAULT_INSTANCE
from sqlrenamer.errors import RenamerError


class ServiceControl:
    """Stops and starts the instance services with `net`."""

    def __init__(self, logger, console, run_cmd: Callable, instance: str = DEFAULT_INSTANCE):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.instance = instance or DEFAULT_INSTANCE

    @property
    def service_name(self) -> str:
        if self.instance.upper() == DEFAULT_INSTANCE:
            return DEFAULT_INSTANCE
        return f"MSSQL${self.instance}"

    @property
    def agent_service_name(self) -> str:
        if self.instance.upper() == DEFAULT_INSTANCE:
            return "SQLSERVERAGENT"
        return f"SQLAgent${self.instance}"

    def restart(self):
        """Restarts the engine; `/y` also stops dependents such as the Agent."""
        self.console.print(f"[blue]Restarting service {self.service_name}...[/blue]")
        self.logger.info("Restarting service %s", self.service_name)

        self.run_cmd(["net", "stop", self.service_name, "/y"], check=True, capture_output=True)
        self.run_cmd(["net", "start", self.service_name], check=True, capture_output=True)

    def start_agent(self) -> bool:
        try:
            self.run_cmd(["net", "start", self.agent_service_name], check=True, capture_output=True)
        except RenamerError as exc:
            self.logger.warning("Could not start %s: %s", self.agent_service_name, exc)
            return False
        return True
