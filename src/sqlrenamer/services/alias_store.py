"""Read and rewrite SQL client aliases stored in the registry."""

import re
from typing import Callable, List

from sqlrenamer.errors import NamespaceNotFound, RenamerError
from sqlrenamer.models import AliasNamespace, AliasRecord, OperationOutcome, RemoteSession


class AliasStore:
    """Lists and writes ConnectTo values with `reg query` / `reg add`."""

    STRING_TYPE = "REG_SZ"
    NOT_FOUND_MARKER = "unable to find the specified registry key"

    # reg.exe indents values by exactly four spaces and separates columns the same way.
    _VALUE_LINE = re.compile(r"^ {4}(?P<name>.+?) {4}(?P<type>REG_[A-Z_]+)(?: {4}(?P<value>.*))?$")

    def __init__(self, logger, run_cmd: Callable):
        self.logger = logger
        self.run_cmd = run_cmd

    @staticmethod
    def target(session: RemoteSession, record: AliasRecord) -> str:
        return f"{session.host}/{record.namespace.label}/{record.name}"

    def parse_query_output(self, output: str, namespace: AliasNamespace) -> List[AliasRecord]:
        records: List[AliasRecord] = []
        for line in output.splitlines():
            match = self._VALUE_LINE.match(line.rstrip("\r"))
            if not match:
                continue
            if match.group("type") != self.STRING_TYPE:
                self.logger.debug("Ignoring non-string alias value '%s'", match.group("name"))
                continue
            records.append(
                AliasRecord.parse(
                    name=match.group("name"),
                    raw_value=match.group("value") or "",
                    namespace=namespace,
                )
            )
        return records

    @staticmethod
    def _subkey_names(output: str) -> List[str]:
        # Subkeys are listed as unindented full paths after the queried key's own header line.
        paths = [line.strip() for line in output.splitlines() if line.strip() and not line[0].isspace()]
        return [path.rsplit("\\", 1)[-1].lower() for path in paths[1:]]

    def _key_is_missing(self, session: RemoteSession, namespace: AliasNamespace) -> bool:
        """Walks up from the alias key to the nearest readable ancestor.

        The key is missing when that ancestor does not list the next path segment.
        When no ancestor can be read the failure is not a missing key.
        """
        root = f"{session.registry_prefix}{namespace.hive}"
        segments = namespace.key.split("\\")
        for depth in range(len(segments) - 1, -1, -1):
            ancestor = "\\".join([root] + segments[:depth])
            result = self.run_cmd(["reg", "query", ancestor], check=False, capture_output=True)
            if result.returncode != 0:
                continue
            return segments[depth].lower() not in self._subkey_names(result.stdout or "")
        return False

    def list(self, session: RemoteSession, namespace: AliasNamespace) -> List[AliasRecord]:
        path = namespace.path(session.registry_prefix)
        result = self.run_cmd(["reg", "query", path], check=False, capture_output=True)

        if result.returncode != 0:
            output = f"{result.stderr or ''}\n{result.stdout or ''}".strip()
            if self.NOT_FOUND_MARKER in output.lower() or self._key_is_missing(session, namespace):
                raise NamespaceNotFound(session.host, namespace.label)
            raise RenamerError(f"Could not read aliases from {path} ({result.returncode}): {output}")

        records = self.parse_query_output(result.stdout or "", namespace)
        self.logger.debug("Found %s alias value(s) in %s", len(records), path)
        return records

    def write(self, session: RemoteSession, record: AliasRecord) -> OperationOutcome:
        target = self.target(session, record)
        if record.is_default:
            return OperationOutcome(
                target=target,
                succeeded=False,
                detail="Refusing to modify the namespace default value.",
                host=session.host,
            )

        path = record.namespace.path(session.registry_prefix)
        try:
            self.run_cmd(
                ["reg", "add", path, "/v", record.name, "/t", self.STRING_TYPE, "/d", record.raw_value, "/f"],
                check=True,
                capture_output=True,
            )
        except RenamerError as exc:
            self.logger.warning("Could not update alias %s: %s", target, exc)
            return OperationOutcome(target=target, succeeded=False, detail=str(exc), host=session.host)

        return OperationOutcome(target=target, succeeded=True, detail=f"Set to {record.raw_value}", host=session.host)
