"""Exception hierarchy for tierstore.

Every failure the core raises derives from TierStoreError so callers can
catch the whole family at their boundary.
"""

from __future__ import annotations


class TierStoreError(Exception):
    """Base class for all tierstore errors."""


class NotFoundError(TierStoreError, LookupError):
    """Something addressed by path does not exist."""


class PathNotFoundError(NotFoundError):
    """A local filesystem path handed to the enumerator does not exist."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"File not found: {path}")


class BlobNotFoundError(NotFoundError):
    """No row exists for a path key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Blob not found: {key}")


class ClassificationError(TierStoreError):
    """The content sniffer could not be initialized or failed on a buffer."""


class StorageFatalError(TierStoreError):
    """An upload to the configured object storage failed.

    Raised instead of degrading to inline storage: a blob must live in
    exactly one tier.
    """

    def __init__(self, key: str, reason: object = None) -> None:
        self.key = key
        message = f"failed to upload to {key}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)


class RetrievalError(TierStoreError):
    """An offloaded blob could not be fetched from object storage."""

    def __init__(self, key: str, reason: object = None) -> None:
        self.key = key
        message = f"failed to fetch {key} from object storage"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)


class TransactionError(TierStoreError):
    """Beginning or committing a relational transaction failed."""


class ConfigurationError(TierStoreError):
    """Invalid or incomplete configuration."""


class StorageNotConfiguredError(ConfigurationError):
    """An operation needs object storage but none is configured."""
