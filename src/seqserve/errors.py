"""Error taxonomy.

Initialization failures are typed so the setup wizard can tell recoverable
problems (missing BLAST+, no database directory, no database) from fatal ones.
"""

from __future__ import annotations

import enum


SUPPORT_CHANNEL = "the seqserve issue tracker"


class FailureKind(enum.Enum):
    BINARY_MISSING = "binary_missing"
    DATABASE_DIR_UNSET = "database_dir_unset"
    NO_DATABASE_FOUND = "no_database_found"
    CONFIG_ERROR = "config_error"
    UNEXPECTED = "unexpected"


RECOVERABLE_KINDS = frozenset(
    {FailureKind.BINARY_MISSING, FailureKind.DATABASE_DIR_UNSET, FailureKind.NO_DATABASE_FOUND}
)


class SeqserveError(Exception):
    """Base class for errors with a user-facing message."""

    kind: FailureKind | None = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ArgumentError(SeqserveError):
    """Bad command-line input."""


class BinaryMissingOrIncompatible(SeqserveError):
    kind = FailureKind.BINARY_MISSING


class DatabaseDirUnset(SeqserveError):
    kind = FailureKind.DATABASE_DIR_UNSET


class NoDatabaseFound(SeqserveError):
    kind = FailureKind.NO_DATABASE_FOUND


class ConfigFileError(SeqserveError):
    kind = FailureKind.CONFIG_ERROR


class GenericIOError(SeqserveError):
    kind = FailureKind.CONFIG_ERROR


class NumThreadsInvalid(SeqserveError):
    kind = FailureKind.CONFIG_ERROR


class DownloadError(SeqserveError):
    """Downloading or extracting a remote archive failed."""
