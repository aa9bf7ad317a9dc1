"""Exception hierarchy shared by the repository, the backup codec and the API."""
from __future__ import annotations

from typing import Iterable, List, Union


class GalerieError(Exception):
    """Base class for every error raised by :mod:`galerie_core`."""


class ValidationError(GalerieError):
    """User input was rejected; nothing was written."""

    def __init__(self, messages: Union[str, Iterable[str]]):
        if isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages))


class UnsupportedMediaError(ValidationError):
    pass


class NotFoundError(GalerieError):
    pass


class ConflictError(GalerieError):
    pass


class ArchiveFormatError(GalerieError):
    """The uploaded backup is not a readable archive of the expected shape."""


class BackupBusyError(GalerieError):
    pass


class BackupRestoreError(GalerieError):
    """Restoring a backup failed after validation (database or uploads swap)."""


class SchemaMigrationError(GalerieError):
    pass


class MailDeliveryError(GalerieError):
    """The notification email could not be handed to the mail provider."""


__all__ = [
    "GalerieError",
    "ValidationError",
    "UnsupportedMediaError",
    "NotFoundError",
    "ConflictError",
    "ArchiveFormatError",
    "BackupBusyError",
    "BackupRestoreError",
    "SchemaMigrationError",
    "MailDeliveryError",
]
