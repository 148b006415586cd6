from __future__ import annotations


class UserFacingError(Exception):
    """Base exception carrying user-presentable context."""

    def __init__(self, message: str, *, title: str, remediation: str | None = None) -> None:
        super().__init__(message)
        self.title = title
        self.remediation = remediation or ""


class StorageReadError(UserFacingError):
    """Stored local data could not be read or decoded."""


class MigrationBlockedError(UserFacingError):
    pass


class BackupImportError(UserFacingError):
    pass


class InvalidShapeError(BackupImportError):
    pass


class ParseFailureError(BackupImportError):
    pass


class RemoteConnectionError(UserFacingError):
    pass


class InvalidCredentialsError(RemoteConnectionError):
    pass


class UnreachableError(RemoteConnectionError):
    pass


class ProvisionError(UserFacingError):
    pass


class RpcUnavailableError(ProvisionError):
    pass


class ExecutionFailedError(ProvisionError):
    pass


__all__ = [
    "UserFacingError",
    "StorageReadError",
    "MigrationBlockedError",
    "BackupImportError",
    "InvalidShapeError",
    "ParseFailureError",
    "RemoteConnectionError",
    "InvalidCredentialsError",
    "UnreachableError",
    "ProvisionError",
    "RpcUnavailableError",
    "ExecutionFailedError",
]
