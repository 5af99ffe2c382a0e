"""Point client aliases on one or more hosts at the renamed server."""

from dataclasses import replace
from typing import List, Optional, Sequence

from sqlrenamer.errors import NamespaceNotFound, RenamerError
from sqlrenamer.models import ALIAS_NAMESPACES, AliasNamespace, Credential, OperationOutcome
from sqlrenamer.services.alias_store import AliasStore
from sqlrenamer.services.remote_session import RemoteSessionBroker


class AliasSynchronizer:
    def __init__(
        self,
        logger,
        console,
        broker: RemoteSessionBroker,
        store: AliasStore,
        namespaces: Sequence[AliasNamespace] = ALIAS_NAMESPACES,
    ):
        self.logger = logger
        self.console = console
        self.broker = broker
        self.store = store
        self.namespaces = tuple(namespaces)

    def sync(
        self,
        host: str,
        target_server_name: str,
        credential: Optional[Credential] = None,
        match_server: Optional[str] = None,
    ) -> List[OperationOutcome]:
        """Rewrites every alias on ``host`` whose server differs from the target.

        With ``match_server`` only aliases currently pointing at that name are touched.
        Returns outcomes in discovery order; a host that cannot be reached or read
        yields a single failed outcome instead of raising.
        """
        outcomes: List[OperationOutcome] = []
        try:
            with self.broker.session(host, credential) as session:
                for namespace in self.namespaces:
                    try:
                        records = self.store.list(session, namespace)
                    except NamespaceNotFound:
                        self.logger.info("No %s alias namespace on %s, skipping.", namespace.label, session.host)
                        continue

                    for record in records:
                        if record.is_default or not record.is_eligible:
                            continue
                        if record.points_to(target_server_name):
                            continue
                        if match_server and not record.points_to(match_server):
                            continue

                        old_server = record.server
                        outcome = self.store.write(session, record.with_server(target_server_name))
                        if outcome.succeeded:
                            outcome = replace(
                                outcome,
                                detail=f"Alias '{record.name}' updated from '{old_server}' to '{target_server_name}'.",
                            )
                            self.logger.info("%s: %s", outcome.target, outcome.detail)
                        outcomes.append(outcome)
        except RenamerError as exc:
            self.logger.warning("Alias synchronization failed on %s: %s", host, exc)
            outcomes.append(OperationOutcome(target=host, succeeded=False, detail=str(exc), host=host))
        except Exception as exc:
            self.logger.warning("Unexpected error while synchronizing aliases on %s: %s", host, exc)
            outcomes.append(
                OperationOutcome(target=host, succeeded=False, detail=f"Unexpected error: {exc}", host=host)
            )

        return outcomes

    def sync_hosts(
        self,
        hosts: Sequence[str],
        target_server_name: str,
        credential: Optional[Credential] = None,
        match_server: Optional[str] = None,
    ) -> List[OperationOutcome]:
        outcomes: List[OperationOutcome] = []
        for host in hosts:
            self.console.print(f"[blue]Synchronizing aliases on {host}...[/blue]")
            host_outcomes = self.sync(host, target_server_name, credential, match_server=match_server)
            failures = sum(1 for outcome in host_outcomes if not outcome.succeeded)
            if failures:
                self.console.print(f"[yellow]{host}: {failures} alias operation(s) failed.[/yellow]")
            else:
                self.console.print(f"[green]{host}: {len(host_outcomes)} alias(es) updated.[/green]")
            outcomes.extend(host_outcomes)
        return outcomes
