import json
import subprocess

import pytest

from sqlrenamer.core import ServerRenamer
from sqlrenamer.errors import IdentityMismatch, QuiesceFailure, RenameFailure, RenamerError
from sqlrenamer.models import Credential

PRIMARY = "HKLM\\SOFTWARE\\Microsoft\\MSSQLServer\\Client\\ConnectTo"


class FakeServerHost:
    """A local SQL Server plus registry and remote hosts driven through run_cmd."""

    def __init__(
        self,
        server_name="OLD-SQL",
        databases=("Orders", "Billing"),
        busy=None,
        restore_failures=(),
        fail_on=(),
        ignore_rename=False,
        registries=None,
        unreachable=(),
    ):
        self.server_name = server_name
        self.pending_name = None
        self.databases = list(databases)
        self.busy = dict(busy or {})
        self.restore_failures = set(restore_failures)
        self.fail_on = tuple(fail_on)
        self.ignore_rename = ignore_rename
        self.registries = registries or {}
        self.unreachable = set(unreachable)
        self.commands = []
        self.queries = []

    def _ok(self, cmd, stdout=""):
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    def run(self, cmd, check=True, capture_output=False, **_kwargs):
        self.commands.append(cmd)
        if cmd[0] == "sqlcmd":
            return self._sqlcmd(cmd)
        if cmd[:2] == ["net", "use"]:
            host = cmd[2][2:].split("\\")[0]
            if "/delete" not in cmd and host in self.unreachable:
                raise RenamerError("System error 53 has occurred.")
            return self._ok(cmd)
        if cmd[0] == "net":
            if any(marker in " ".join(cmd) for marker in self.fail_on):
                raise RenamerError(f"Command failed (2): {' '.join(cmd)}")
            if cmd[1] == "start" and self.pending_name and not self.ignore_rename:
                self.server_name = self.pending_name
            return self._ok(cmd)
        if cmd[0] == "reg":
            return self._reg(cmd)
        raise AssertionError(f"unexpected command {cmd}")

    def _sqlcmd(self, cmd):
        query = cmd[-1]
        self.queries.append(query)
        for marker in self.fail_on:
            if marker in query:
                raise RenamerError(f"Command failed (1): sqlcmd\nMsg 50000: {marker} failed")
        if "@@SERVERNAME" in query:
            return self._ok(cmd, f"{self.server_name}\n")
        if "sys.databases" in query:
            return self._ok(cmd, "".join(f"{name}|MULTI_USER\n" for name in self.databases))
        if "SINGLE_USER" in query:
            name = query.split("[")[1].split("]")[0]
            if self.busy.get(name, 0):
                self.busy[name] -= 1
                raise RenamerError(f"Command failed (1): sqlcmd\nMsg 5064: database '{name}' is in use")
            return self._ok(cmd)
        if "MULTI_USER" in query:
            name = query.split("[")[1].split("]")[0]
            if name in self.restore_failures:
                raise RenamerError(f"Command failed (1): sqlcmd\nMsg 5011: cannot alter '{name}'")
            return self._ok(cmd)
        if "sp_addserver" in query:
            self.pending_name = query.split("sp_addserver N'")[1].split("'")[0]
            return self._ok(cmd)
        return self._ok(cmd)

    def _reg(self, cmd):
        path = cmd[2]
        if path.startswith("\\\\"):
            host, _, key = path[2:].partition("\\")
        else:
            host, key = "localhost", path
        values = self.registries.get(host, {}).get(key)
        if cmd[1] == "query":
            if values is None:
                return subprocess.CompletedProcess(
                    cmd, 1, stdout="", stderr="ERROR: The system was unable to find the specified registry key or value."
                )
            lines = [f"    {name}    REG_SZ    {value}" for name, value in values.items()]
            return self._ok(cmd, "\n".join(lines))
        values[cmd[4]] = cmd[8]
        return self._ok(cmd)

    def sql_index(self, marker):
        for index, query in enumerate(self.queries):
            if marker in query:
                return index
        return -1


def build_renamer(tmp_path, fake, **kwargs):
    sleeps = []
    renamer = ServerRenamer(
        new_name=kwargs.pop("new_name", "NEW-SQL"),
        report_file=str(tmp_path / "rename-report.json"),
        sleep=sleeps.append,
        **kwargs,
    )
    renamer.command_runner = fake
    renamer.sleeps = sleeps
    return renamer


def read_report(tmp_path):
    return json.loads((tmp_path / "rename-report.json").read_text(encoding="utf-8"))


def test_constructor_rejects_empty_name(tmp_path):
    with pytest.raises(RenamerError, match="must not be empty"):
        ServerRenamer(new_name="  ", report_file=str(tmp_path / "r.json"))


def test_run_rename_end_to_end(tmp_path):
    fake = FakeServerHost(registries={"localhost": {PRIMARY: {"SALES": "DBNETLIB,OLD-SQL,1433", "LEGACY": "DBNETLIB"}}})
    renamer = build_renamer(tmp_path, fake)

    report = renamer.run_rename()

    assert report.identity.current_name == "OLD-SQL"
    assert report.renamed and report.verified
    assert report.databases == ["Orders", "Billing"]
    assert [(o.target, o.succeeded) for o in report.restore_outcomes] == [("Orders", True), ("Billing", True)]
    assert fake.registries["localhost"][PRIMARY]["SALES"] == "DBNETLIB,NEW-SQL,1433"
    assert fake.registries["localhost"][PRIMARY]["LEGACY"] == "DBNETLIB"
    assert len(report.alias_outcomes) == 1
    assert "OLD-SQL" in report.alias_outcomes[0].detail and "NEW-SQL" in report.alias_outcomes[0].detail

    assert fake.sql_index("BACKUP DATABASE [master]") < fake.sql_index("SINGLE_USER")
    assert fake.sql_index("SINGLE_USER") < fake.sql_index("sp_dropserver")
    assert fake.sql_index("sp_dropserver") < fake.sql_index("MULTI_USER;")


def test_run_returns_zero_and_writes_report(tmp_path):
    fake = FakeServerHost(registries={"localhost": {PRIMARY: {"SALES": "DBNETLIB,OLD-SQL,1433"}}})
    renamer = build_renamer(tmp_path, fake)

    assert renamer.run() == 0

    data = read_report(tmp_path)
    assert data["status"] == "success"
    assert [step["name"] for step in data["steps"]] == [
        "read_server_identity",
        "discover_databases",
        "backup_system_databases",
        "quiesce_databases",
        "rename_server",
        "restart_service",
        "verify_server_name",
        "restore_database_access",
        "sync_aliases",
    ]
    assert data["result"]["identity"]["target_name"] == "NEW-SQL"


def test_quiesce_exhaustion_aborts_before_rename(tmp_path):
    fake = FakeServerHost(databases=("Orders",), busy={"Orders": 3})
    renamer = build_renamer(tmp_path, fake)

    with pytest.raises(RenameFailure) as exc_info:
        renamer.run_rename()

    cause = exc_info.value.__cause__
    assert isinstance(cause, QuiesceFailure)
    assert cause.database == "Orders"
    assert cause.attempts == 3
    assert exc_info.value.step == "quiesce_databases"
    assert str(exc_info.value) == str(cause)
    assert fake.sql_index("sp_dropserver") == -1
    assert renamer.sleeps == [5.0, 5.0]
    assert exc_info.value.report.renamed is False


def test_quiesce_recovering_on_second_attempt_completes(tmp_path):
    fake = FakeServerHost(databases=("Orders",), busy={"Orders": 1})
    renamer = build_renamer(tmp_path, fake)

    report = renamer.run_rename()

    assert report.renamed
    assert renamer.sleeps == [5.0]


def test_backup_failure_aborts_before_any_mutation(tmp_path):
    fake = FakeServerHost(fail_on=("BACKUP DATABASE [msdb]",))
    renamer = build_renamer(tmp_path, fake)

    assert renamer.run() == 1

    assert fake.sql_index("SINGLE_USER") == -1
    data = read_report(tmp_path)
    assert data["status"] == "failed"
    assert data["steps"][-1]["name"] == "backup_system_databases"
    assert data["steps"][-1]["status"] == "failed"


def test_rename_failure_leaves_databases_single_user(tmp_path):
    fake = FakeServerHost(fail_on=("sp_dropserver",))
    renamer = build_renamer(tmp_path, fake)

    with pytest.raises(RenameFailure) as exc_info:
        renamer.run_rename()

    assert exc_info.value.step == "rename_server"
    assert "still in single-user mode" in str(exc_info.value)
    assert fake.sql_index("MULTI_USER;") == -1
    assert not any(cmd[:2] == ["net", "stop"] for cmd in fake.commands)


def test_restart_failure_is_fatal(tmp_path):
    fake = FakeServerHost(fail_on=("net start MSSQLSERVER",))
    renamer = build_renamer(tmp_path, fake)

    with pytest.raises(RenameFailure) as exc_info:
        renamer.run_rename()

    assert exc_info.value.step == "restart_service"
    assert exc_info.value.report.renamed is True


def test_name_mismatch_after_restart_is_fatal(tmp_path):
    fake = FakeServerHost(ignore_rename=True)
    renamer = build_renamer(tmp_path, fake)

    with pytest.raises(RenameFailure) as exc_info:
        renamer.run_rename()

    assert isinstance(exc_info.value.__cause__, IdentityMismatch)
    assert exc_info.value.step == "verify_server_name"
    assert exc_info.value.report.verified is False


def test_restore_failures_are_warnings(tmp_path):
    fake = FakeServerHost(databases=("A", "B", "C"), restore_failures={"A"})
    renamer = build_renamer(tmp_path, fake)

    assert renamer.run() == 0

    restored = [query for query in fake.queries if "MULTI_USER;" in query]
    assert len(restored) == 3
    data = read_report(tmp_path)
    assert data["status"] == "completed_with_warnings"
    assert data["result"]["restore_outcomes"][0]["succeeded"] is False


def test_alias_hosts_are_processed_local_first_and_isolated(tmp_path):
    fake = FakeServerHost(
        registries={
            "localhost": {PRIMARY: {"SALES": "DBMSSOCN,OLD-SQL"}},
            "APP02": {PRIMARY: {"SALES": "DBMSSOCN,OLD-SQL"}},
        },
        unreachable={"APP01"},
    )
    renamer = build_renamer(
        tmp_path,
        fake,
        hosts=["APP01", "localhost", "APP02", "app02"],
        credential=Credential("CORP\\admin", "pw"),
    )

    assert renamer.alias_hosts() == ["localhost", "APP01", "APP02"]

    report = renamer.run_rename()

    assert [outcome.target for outcome in report.alias_outcomes] == [
        "localhost/primary/SALES",
        "APP01",
        "APP02/primary/SALES",
    ]
    assert [outcome.succeeded for outcome in report.alias_outcomes] == [True, False, True]
    assert fake.registries["APP02"][PRIMARY]["SALES"] == "DBMSSOCN,NEW-SQL"


def test_already_renamed_server_is_rejected(tmp_path):
    fake = FakeServerHost(server_name="new-sql")
    renamer = build_renamer(tmp_path, fake)

    with pytest.raises(RenameFailure, match="already named"):
        renamer.run_rename()

    assert fake.sql_index("BACKUP") == -1


def test_aliases_only_skips_sql_server(tmp_path):
    fake = FakeServerHost(registries={"localhost": {PRIMARY: {"SALES": "DBMSSOCN,OLD-SQL,1433"}}})
    renamer = build_renamer(tmp_path, fake, aliases_only=True)

    assert renamer.run() == 0

    assert fake.queries == []
    assert fake.registries["localhost"][PRIMARY]["SALES"] == "DBMSSOCN,NEW-SQL,1433"
    assert [step["name"] for step in read_report(tmp_path)["steps"]] == ["sync_aliases"]
