"""Custom exception hierarchy for structure-table runtime and validation errors."""

class StructureTableError(Exception):
    """Base exception for structure-table domain errors."""
    pass


class NotFoundError(StructureTableError):
    """Raised when a referenced structure, section, subsection or field is absent."""
    pass


class PersistenceError(StructureTableError):
    """Raised when a backend read or write fails."""
    pass


class ValidationError(StructureTableError):
    """Raised for invalid structure fragments or field/table bindings."""
    pass


class StructureConfigError(StructureTableError):
    """Raised for malformed structure documents or settings files."""
    pass


class ParquetUnavailableError(StructureTableError):
    """Raised when Parquet functionality requires unavailable dependencies."""
    pass
