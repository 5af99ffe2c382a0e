"""Shared domain models for SQLRenamer."""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .constants import (
    ALIAS_DEFAULT_VALUE_NAME,
    ALIAS_FIELD_SEPARATOR,
    ALIAS_PRIMARY_KEY,
    ALIAS_REGISTRY_HIVE,
    ALIAS_SERVER_FIELD_INDEX,
    ALIAS_WOW6432_KEY,
)
from .errors import RenamerError


@dataclass(frozen=True)
class ServerIdentity:
    """Name of the live instance captured at start, and the name it should get."""

    current_name: str
    target_name: str

    def __post_init__(self):
        if not self.target_name or not self.target_name.strip():
            raise RenamerError("Target server name must not be empty.")

    @property
    def is_noop(self) -> bool:
        return self.current_name.strip().lower() == self.target_name.strip().lower()


class AccessState(str, Enum):
    MULTI_USER = "MULTI_USER"
    RESTRICTED_USER = "RESTRICTED_USER"
    SINGLE_USER = "SINGLE_USER"


@dataclass
class DatabaseHandle:
    name: str
    access_state: AccessState = AccessState.MULTI_USER


@dataclass(frozen=True)
class AliasNamespace:
    """One of the two parallel ConnectTo registry keys scanned for aliases."""

    label: str
    key: str
    hive: str = ALIAS_REGISTRY_HIVE

    def path(self, registry_prefix: str = "") -> str:
        return f"{registry_prefix}{self.hive}\\{self.key}"


PRIMARY_NAMESPACE = AliasNamespace(label="primary", key=ALIAS_PRIMARY_KEY)
WOW6432_NAMESPACE = AliasNamespace(label="wow6432", key=ALIAS_WOW6432_KEY)
ALIAS_NAMESPACES = (PRIMARY_NAMESPACE, WOW6432_NAMESPACE)


@dataclass(frozen=True)
class AliasRecord:
    """A ConnectTo value parsed into its comma-delimited fields.

    Field 1 is the server reference, e.g. ``DBMSSOCN,SQL01,1433``. Records with fewer
    than two fields are kept as discovered but are never rewritten.
    """

    name: str
    raw_value: str
    fields: Tuple[str, ...]
    namespace: AliasNamespace = PRIMARY_NAMESPACE

    @classmethod
    def parse(cls, name: str, raw_value: str, namespace: AliasNamespace = PRIMARY_NAMESPACE):
        return cls(
            name=name,
            raw_value=raw_value,
            fields=tuple(raw_value.split(ALIAS_FIELD_SEPARATOR)),
            namespace=namespace,
        )

    @property
    def is_default(self) -> bool:
        return self.name == ALIAS_DEFAULT_VALUE_NAME

    @property
    def is_eligible(self) -> bool:
        return len(self.fields) > ALIAS_SERVER_FIELD_INDEX

    @property
    def server(self) -> Optional[str]:
        if not self.is_eligible:
            return None
        return self.fields[ALIAS_SERVER_FIELD_INDEX]

    def points_to(self, server_name: str) -> bool:
        server = self.server
        if server is None:
            return False
        return server.strip().lower() == server_name.strip().lower()

    def with_server(self, server_name: str) -> "AliasRecord":
        if not self.is_eligible:
            raise RenamerError(f"Alias '{self.name}' has no server field to replace.")
        fields = list(self.fields)
        fields[ALIAS_SERVER_FIELD_INDEX] = server_name
        new_fields = tuple(fields)
        return replace(self, fields=new_fields, raw_value=ALIAS_FIELD_SEPARATOR.join(new_fields))


@dataclass(frozen=True)
class Credential:
    username: str
    password: str = field(repr=False, default="")


@dataclass
class RemoteSession:
    host: str
    credential: Optional[Credential] = None
    active: bool = False
    is_local: bool = False

    @property
    def unc_host(self) -> str:
        return f"\\\\{self.host}"

    @property
    def registry_prefix(self) -> str:
        return "" if self.is_local else f"{self.unc_host}\\"


@dataclass(frozen=True)
class OperationOutcome:
    target: str
    succeeded: bool
    detail: str
    host: Optional[str] = None


@dataclass
class RenameReport:
    """Aggregated result of a run, complete even when a fatal step stopped it."""

    identity: Optional[ServerIdentity] = None
    databases: List[str] = field(default_factory=list)
    renamed: bool = False
    verified: bool = False
    restore_outcomes: List[OperationOutcome] = field(default_factory=list)
    alias_outcomes: List[OperationOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def restore_failures(self) -> List[OperationOutcome]:
        return [outcome for outcome in self.restore_outcomes if not outcome.succeeded]

    @property
    def alias_failures(self) -> List[OperationOutcome]:
        return [outcome for outcome in self.alias_outcomes if not outcome.succeeded]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": asdict(self.identity) if self.identity else None,
            "databases": list(self.databases),
            "renamed": self.renamed,
            "verified": self.verified,
            "restore_outcomes": [asdict(outcome) for outcome in self.restore_outcomes],
            "alias_outcomes": [asdict(outcome) for outcome in self.alias_outcomes],
            "error": self.error,
        }
