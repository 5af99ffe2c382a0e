"""Administrative sessions to the hosts whose aliases are synchronized."""

import socket
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from sqlrenamer.constants import IPC_SHARE, LOCAL_HOST_NAMES
from sqlrenamer.errors import ConnectFailure, RenamerError
from sqlrenamer.models import Credential, RemoteSession


class RemoteSessionBroker:
    """Opens and releases `net use` connections to a host's IPC$ share.

    The local machine gets a no-op session. Only one session is expected to be open
    at a time; callers should go through :meth:`session` so release happens on every
    exit path.
    """

    def __init__(self, logger, run_cmd: Callable, local_hostname: Optional[str] = None):
        self.logger = logger
        self.run_cmd = run_cmd
        self.local_hostname = (local_hostname or socket.gethostname()).lower()

    def is_local(self, host: Optional[str]) -> bool:
        name = (host or "").strip().lower()
        return name in LOCAL_HOST_NAMES or name == self.local_hostname

    @staticmethod
    def _share(host: str) -> str:
        return f"\\\\{host}\\{IPC_SHARE}"

    def open(self, host: str, credential: Optional[Credential] = None) -> RemoteSession:
        if self.is_local(host):
            return RemoteSession(host=host or "localhost", credential=credential, active=True, is_local=True)

        session = RemoteSession(host=host, credential=credential)
        cmd: List[str] = ["net", "use", self._share(host)]
        secrets: List[str] = []
        if credential is not None:
            cmd.extend([credential.password, f"/user:{credential.username}"])
            secrets.append(credential.password)

        self.logger.info("Connecting to %s", host)
        try:
            self.run_cmd(cmd, check=True, capture_output=True, secrets=secrets)
        except RenamerError as exc:
            raise ConnectFailure(host, str(exc)) from exc

        session.active = True
        return session

    def close(self, session: Optional[RemoteSession]):
        if session is None or not session.active:
            return
        session.active = False
        if session.is_local:
            return

        try:
            result = self.run_cmd(
                ["net", "use", self._share(session.host), "/delete", "/y"],
                check=False,
                capture_output=True,
            )
        except RenamerError as exc:
            self.logger.warning("Could not disconnect from %s: %s", session.host, exc)
            return

        if result.returncode != 0:
            self.logger.warning(
                "Disconnecting from %s returned %s.", session.host, result.returncode
            )
        else:
            self.logger.debug("Disconnected from %s", session.host)

    @contextmanager
    def session(self, host: str, credential: Optional[Credential] = None) -> Iterator[RemoteSession]:
        opened = self.open(host, credential)
        try:
            yield opened
        finally:
            self.close(opened)
