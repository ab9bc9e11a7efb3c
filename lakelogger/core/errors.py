"""Error taxonomy shared by the stores, the sync engine and the API."""

from __future__ import annotations


class LakeLoggerError(Exception):
    """Base class for every error raised by lakelogger."""

    recoverable = False


class LocalStoreError(LakeLoggerError):
    """The on-device store could not complete a write or read."""


class RemoteStoreError(LakeLoggerError):
    """The remote store rejected or failed a request. Nothing was committed."""


class RemoteUnavailableError(RemoteStoreError):
    """Network failure or timeout talking to the remote store. Safe to retry."""

    recoverable = True


class ImportPayloadError(LakeLoggerError):
    """An import batch was rejected before any store mutation."""

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class ProjectNotFoundError(LakeLoggerError):
    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(f"project {project_id} not found")


class ReadingNotFoundError(LakeLoggerError):
    def __init__(self, reading_id: int) -> None:
        self.reading_id = reading_id
        super().__init__(f"reading {reading_id} not found")


class DuplicateProjectError(LakeLoggerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"project name {name!r} already exists")


class BadRequestError(LakeLoggerError):
    """A request body could not be parsed or failed validation."""
