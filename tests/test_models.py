import pytest

from sqlrenamer.errors import RenamerError
from sqlrenamer.models import (
    WOW6432_NAMESPACE,
    AliasRecord,
    Credential,
    OperationOutcome,
    RenameReport,
    ServerIdentity,
)


def test_server_identity_requires_target_name():
    with pytest.raises(RenamerError):
        ServerIdentity(current_name="OLD-SQL", target_name="  ")


def test_server_identity_is_immutable():
    identity = ServerIdentity(current_name="OLD-SQL", target_name="NEW-SQL")

    with pytest.raises(AttributeError):
        identity.current_name = "OTHER"


def test_server_identity_noop_is_case_insensitive():
    assert ServerIdentity(current_name="SQL01", target_name="sql01").is_noop
    assert not ServerIdentity(current_name="SQL01", target_name="SQL02").is_noop


def test_alias_record_with_server_preserves_other_fields():
    record = AliasRecord.parse("SALES", "DBMSSOCN,OLD-SQL,1433,,x", namespace=WOW6432_NAMESPACE)

    updated = record.with_server("NEW-SQL")

    assert updated.raw_value == "DBMSSOCN,NEW-SQL,1433,,x"
    assert updated.namespace is WOW6432_NAMESPACE
    assert record.server == "OLD-SQL"


def test_alias_record_single_field_is_not_eligible():
    record = AliasRecord.parse("LEGACY", "DBNETLIB")

    assert record.is_eligible is False
    assert record.server is None
    assert record.points_to("DBNETLIB") is False
    with pytest.raises(RenamerError):
        record.with_server("NEW-SQL")


def test_alias_record_two_empty_fields_are_eligible():
    record = AliasRecord.parse("EMPTY", ",")

    assert record.is_eligible
    assert record.with_server("NEW-SQL").raw_value == ",NEW-SQL"


def test_credential_repr_hides_password():
    assert "hunter2" not in repr(Credential("admin", "hunter2"))


def test_rename_report_splits_failures():
    report = RenameReport(
        restore_outcomes=[OperationOutcome("A", False, "denied"), OperationOutcome("B", True, "ok")],
        alias_outcomes=[OperationOutcome("APP01", False, "unreachable", host="APP01")],
    )

    assert [outcome.target for outcome in report.restore_failures] == ["A"]
    assert [outcome.target for outcome in report.alias_failures] == ["APP01"]
    assert report.error is None
    assert report.to_dict()["alias_outcomes"][0]["host"] == "APP01"
