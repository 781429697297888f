"""Exceptions raised by the photo storage services."""


class ImageDecodeError(ValueError):
    """The image source could not be fetched, decoded, or has an unsupported scheme."""


class StorageUnavailableError(RuntimeError):
    """The key-value medium is not writable at call time."""


class StorageQuotaError(RuntimeError):
    """A store has no room for a photo, even after evicting older ones."""
