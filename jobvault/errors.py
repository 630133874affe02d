"""
Error taxonomy for jobvault.

Validation and repair never raise for data problems; they return structured
results. The exceptions below are reserved for contract violations and
store failures.
"""

from typing import Optional


class JobVaultError(Exception):
    """Base class for all jobvault errors."""
    pass


class NotFoundError(JobVaultError):
    """Raised when a referenced backup does not exist."""

    def __init__(self, backup_id: str):
        super().__init__(f"Backup not found: {backup_id}")
        self.backup_id = backup_id


class ValidationFailedError(JobVaultError):
    """Raised when critical validation errors block an export or restore."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class CorruptedError(JobVaultError):
    """Raised when a payload cannot be decoded or fails its checksum."""

    def __init__(self, message: str, backup_id: Optional[str] = None):
        super().__init__(message)
        self.backup_id = backup_id


class UnsupportedFormatError(JobVaultError):
    """Raised when the migration codec is asked for an unknown format."""
    pass


class StoreIOError(JobVaultError):
    """Raised when the underlying key-value store operation fails."""
    pass
