"""Shared constants for SQLRenamer."""

DEFAULT_INSTANCE = "MSSQLSERVER"

# sys.databases ids 1-4 are master, tempdb, model and msdb.
SYSTEM_DATABASE_MAX_ID = 4
SYSTEM_BACKUP_DATABASES = ("master", "model", "msdb")

QUIESCE_MAX_ATTEMPTS = 3
QUIESCE_DELAY_SECONDS = 5.0

READY_MAX_RETRIES = 30
READY_DELAY_SECONDS = 2.0

ALIAS_REGISTRY_HIVE = "HKLM"
ALIAS_PRIMARY_KEY = r"SOFTWARE\Microsoft\MSSQLServer\Client\ConnectTo"
ALIAS_WOW6432_KEY = r"SOFTWARE\Wow6432Node\Microsoft\MSSQLServer\Client\ConnectTo"
ALIAS_DEFAULT_VALUE_NAME = "(Default)"
ALIAS_FIELD_SEPARATOR = ","
ALIAS_SERVER_FIELD_INDEX = 1

LOCAL_HOST_NAMES = ("", ".", "localhost", "127.0.0.1")
IPC_SHARE = "IPC$"

SECRET_MASK = "****"
