"""
Error kinds raised by the risk scoring pipeline.

Per-record problems found during validation are data (Violation), not
exceptions. Everything here is raised by a stage and either handled by the
stage itself (MissingReferenceData) or by the orchestrator, which moves the
batch to Failed with the error's kind attached.
"""


class PipelineError(Exception):
    """
    Base class for all pipeline errors.

    Attributes:
        kind: Stable error kind reported to operators
        fatal: Whether the error aborts the batch
        retryable: Whether the orchestrator may retry the failing call
    """

    kind = "PipelineError"
    fatal = True
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SchemaConflict(PipelineError):
    """Raised when a schema publish would change a field incompatibly."""

    kind = "SchemaConflict"

    def __init__(self, message: str, changes: dict | None = None):
        super().__init__(message)
        self.changes = changes or {}


class UnknownVersion(PipelineError):
    """Raised when a schema, feature set or model version cannot be resolved."""

    kind = "UnknownVersion"

    def __init__(self, what: str, version):
        self.what = what
        self.version = version
        super().__init__(f"Unknown {what} version: {version!r}")


class UnknownBatch(PipelineError):
    """Raised when no lineage entry exists for a batch id."""

    kind = "UnknownBatch"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"No lineage recorded for batch {batch_id!r}")


class FeatureSetConflict(PipelineError):
    """Raised when a feature set version is re-registered with different formulas."""

    kind = "FeatureSetConflict"


class MissingReferenceData(PipelineError):
    """Raised for a record whose required reference join has no match at or before as_of."""

    kind = "MissingReferenceData"
    fatal = False

    def __init__(self, identifier: str, geography: str | None, indicator: str, message: str | None = None):
        self.identifier = identifier
        self.geography = geography
        self.indicator = indicator
        super().__init__(
            message
            or f"No '{indicator}' reference value for geography {geography!r} (record {identifier})"
        )


class ModelUnavailable(PipelineError):
    """Raised when the model capability cannot produce a score."""

    kind = "ModelUnavailable"
    retryable = True

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ReferenceDataUnavailable(PipelineError):
    """Raised when the reference snapshot cannot be acquired in time."""

    kind = "ReferenceDataUnavailable"
    retryable = True


class StorageWriteFailure(PipelineError):
    """Raised when a batch commit (or rejection write) fails; nothing is committed."""

    kind = "StorageWriteFailure"


class BatchCancelled(PipelineError):
    """Raised inside a batch run once its cancellation was requested."""

    kind = "BatchCancelled"


class BatchAlreadyCommitted(PipelineError):
    """Raised when cancelling a batch whose results are already final."""

    kind = "BatchAlreadyCommitted"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(
            f"Batch {batch_id!r} is committed and cannot be cancelled; "
            "submit a corrective batch instead"
        )


class BatchConflict(PipelineError):
    """Raised when a batch cannot claim its (identifier, as_of) keys in time."""

    kind = "BatchConflict"


class MissingFeatureInput(PipelineError):
    """Raised for a record lacking a field a non-optional feature is computed from."""

    kind = "MissingFeatureInput"
    fatal = False

    def __init__(self, identifier: str, feature: str, field: str):
        self.identifier = identifier
        self.feature = feature
        self.field = field
        super().__init__(f"Feature '{feature}' needs field '{field}', absent for record {identifier}")
