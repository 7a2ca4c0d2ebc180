"""
Typed Exception Hierarchy for the reconciliation pipeline.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The orchestrator has to decide, per entity type, whether an error stops that
entity type's run or is merely recorded. That decision is made by catching
exception *types*, never by parsing messages. Every exception carries:
  1. a CODE class attribute (machine-readable, stable across releases)
  2. structured attributes (entity type, path, batch index, ...)

Recoverable per-record conditions (orphans, coercion warnings, individual
write failures) are NOT exceptions. They are collected as RecordIssue values
(see media_ingestion.domain.types) and surfaced in the run report.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MediaKernelError (base)
    |
    +-- SourceError
    |   +-- SourceNotFoundError
    |   +-- MalformedSourceError
    |
    +-- IdentityError
    |   +-- MissingBusinessIdError
    |   +-- IdentityFrozenError
    |
    +-- WriteError
    |   +-- BatchRejectedError
    |
    +-- ConfigError
        +-- InvalidConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                 | When Raised
-----------|----------------------|----------------------------------------------
Source     | SOURCE_NOT_FOUND     | Required source file absent (entity-fatal)
           | MALFORMED_SOURCE     | Source cannot be parsed into rows (entity-fatal)
-----------|----------------------|----------------------------------------------
Identity   | MISSING_BUSINESS_ID  | Key derivation requested for an empty id
           | IDENTITY_FROZEN      | Registration after an entity type was frozen
-----------|----------------------|----------------------------------------------
Write      | BATCH_REJECTED       | Whole batch failed, including its retry
-----------|----------------------|----------------------------------------------
Config     | INVALID_CONFIG       | Unknown key or bad value in pipeline config
"""


class MediaKernelError(Exception):
    """
    Base exception for all reconciliation pipeline errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "MEDIA_KERNEL_ERROR"


# Source-related exceptions


class SourceError(MediaKernelError):
    """Base exception for source read errors. Fatal for one entity type."""

    code: str = "SOURCE_ERROR"


class SourceNotFoundError(SourceError):
    """Expected source file is absent."""

    code: str = "SOURCE_NOT_FOUND"

    def __init__(self, source_name: str, path: str):
        self.source_name = source_name
        self.path = path
        super().__init__(f"Source {source_name!r} not found at {path}")


class MalformedSourceError(SourceError):
    """Source content cannot be parsed into rows."""

    code: str = "MALFORMED_SOURCE"

    def __init__(self, source_name: str, path: str, reason: str):
        self.source_name = source_name
        self.path = path
        self.reason = reason
        super().__init__(f"Source {source_name!r} at {path} is malformed: {reason}")


# Identity-related exceptions


class IdentityError(MediaKernelError):
    """Base exception for document identity errors."""

    code: str = "IDENTITY_ERROR"


class MissingBusinessIdError(IdentityError):
    """
    A document key was requested for a null or blank business id.

    Keys are never generated for absent ids: "absent" on a later run does
    not mean "new", so a generated key would duplicate the record.
    """

    code: str = "MISSING_BUSINESS_ID"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Cannot derive a document key for {entity_type} without a business id")


class IdentityFrozenError(IdentityError):
    """Registration attempted after the entity type's mapping was frozen."""

    code: str = "IDENTITY_FROZEN"

    def __init__(self, entity_type: str, business_id: str):
        self.entity_type = entity_type
        self.business_id = business_id
        super().__init__(
            f"Identity mapping for {entity_type} is frozen; cannot register {business_id!r}"
        )


# Write-related exceptions


class WriteError(MediaKernelError):
    """Base exception for target store write errors."""

    code: str = "WRITE_ERROR"


class BatchRejectedError(WriteError):
    """A whole batch was rejected by the target store, including its retry."""

    code: str = "BATCH_REJECTED"

    def __init__(self, collection: str, batch_index: int, attempts: int, reason: str):
        self.collection = collection
        self.batch_index = batch_index
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Batch {batch_index} for {collection} rejected after {attempts} attempt(s): {reason}"
        )


# Config-related exceptions


class ConfigError(MediaKernelError):
    """Base exception for pipeline configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """Pipeline configuration contains an unknown key or an invalid value."""

    code: str = "INVALID_CONFIG"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid pipeline config at {key!r}: {reason}")
