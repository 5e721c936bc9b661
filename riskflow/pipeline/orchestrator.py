"""
Pipeline orchestrator.

Sequences Validation -> Feature Derivation -> Scoring -> Commit for one batch
at a time, drives the batch state machine and converts batch-fatal errors
into a Failed outcome with the originating error kind.

State machine:
    Received -> Validating -> Deriving -> Scoring -> Committed
    (any non-terminal state) -> Failed
"""

import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from pydantic import BaseModel, Field

from riskflow.core.errors import (
    BatchAlreadyCommitted,
    BatchCancelled,
    BatchConflict,
    PipelineError,
    ReferenceDataUnavailable,
    StorageWriteFailure,
    UnknownBatch,
)
from riskflow.core.models import (
    BatchEvent,
    BatchState,
    LineageEntry,
    RawRecord,
    Rejection,
)
from riskflow.core.rules import Validator
from riskflow.core.schema import SchemaRegistry
from riskflow.features import (
    NO_OBSERVATION,
    DerivationExclusion,
    DerivationReport,
    FeatureDeriver,
    FeatureSetRegistry,
    ReferenceDataSource,
    ReferenceSnapshot,
)
from riskflow.observability import metrics
from riskflow.observability.lineage import LineageTracker
from riskflow.observability.logger import get_logger, log_operation
from riskflow.scoring import Scorer
from riskflow.store import RejectionSink, ResultStore
from riskflow.utils.timestamps import ensure_utc, utcnow

from .claims import KeyClaims
from .retry import RetryPolicy, call_with_retry, call_with_timeout

logger = get_logger(__name__)

INTERNAL_ERROR = "InternalError"


class BatchRequest(BaseModel):
    """
    A batch submitted for processing.

    Attributes:
        batch_id: Unique id (generated when omitted)
        records: Raw records sharing one schema version
        schema_version: Schema version to validate against
        feature_set_version: Feature set version to derive with
        model_version: Model version to score with
        as_of: As-of boundary (defaults to the latest record timestamp)
        supersedes: Batch this run corrects (set by reprocessing)
    """

    batch_id: str | None = None
    records: list[RawRecord] = Field(default_factory=list)
    schema_version: int
    feature_set_version: str
    model_version: str
    as_of: datetime | None = None
    supersedes: str | None = None

    class Config:
        protected_namespaces = ()


class BatchReport(BaseModel):
    """
    User-visible outcome of one batch.

    Attributes:
        batch_id: Batch identifier
        state: Terminal state (Committed or Failed)
        total: Records ingested
        valid: Records that passed validation
        invalid: Records routed to the rejection sink
        scored: Score results committed
        excluded_missing_reference: Identifiers lacking a reference join
        excluded_no_observation: Identifiers without an observation at or before as_of
        excluded_missing_input: Identifiers lacking a feature input field
        error_kind: Fatal error kind for failed batches
        error_message: Fatal error message for failed batches
        rejections: Rejected records with their violations
        exclusions: Per-identifier derivation exclusions
        lineage: Committed lineage entry (None unless Committed)
        events: Ordered state-transition events
    """

    batch_id: str
    state: BatchState
    total: int = 0
    valid: int = 0
    invalid: int = 0
    scored: int = 0
    excluded_missing_reference: int = 0
    excluded_no_observation: int = 0
    excluded_missing_input: int = 0
    error_kind: str | None = None
    error_message: str | None = None
    rejections: list[Rejection] = Field(default_factory=list)
    exclusions: list[DerivationExclusion] = Field(default_factory=list)
    lineage: LineageEntry | None = None
    events: list[BatchEvent] = Field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.state == BatchState.COMMITTED


class CancellationToken:
    """Cooperative cancellation flag checked between pipeline steps."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, batch_id: str) -> None:
        if self._event.is_set():
            raise BatchCancelled(f"Batch {batch_id} was cancelled")


def generate_batch_id() -> str:
    return f"batch_{utcnow().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"


class _BatchRun:
    """Mutable progress of one batch, turned into a BatchReport at the end."""

    def __init__(self, batch_id: str, request: BatchRequest):
        self.batch_id = batch_id
        self.request = request
        self.rejections: list[Rejection] = []
        self.valid = 0
        self.derivation = DerivationReport()
        self.scored = 0
        self.lineage: LineageEntry | None = None
        self.error_kind: str | None = None
        self.error_message: str | None = None

    def report(self, state: BatchState, events: list[BatchEvent]) -> BatchReport:
        return BatchReport(
            batch_id=self.batch_id,
            state=state,
            total=len(self.request.records),
            valid=self.valid,
            invalid=len(self.rejections),
            scored=self.scored,
            excluded_missing_reference=self.derivation.excluded_count("MissingReferenceData"),
            excluded_no_observation=self.derivation.excluded_count(NO_OBSERVATION),
            excluded_missing_input=self.derivation.excluded_count("MissingFeatureInput"),
            error_kind=self.error_kind,
            error_message=self.error_message,
            rejections=self.rejections,
            exclusions=self.derivation.excluded,
            lineage=self.lineage,
            events=events,
        )


class PipelineOrchestrator:
    """
    Runs batches through the pipeline.

    Stages within a batch run strictly in sequence; independent batches may
    run concurrently (``run_many``) and are isolated by (identifier, as_of)
    claims. Every transition is emitted as a BatchEvent to the result store.
    """

    def __init__(
        self,
        schemas: SchemaRegistry,
        feature_sets: FeatureSetRegistry,
        scorer: Scorer,
        reference_source: ReferenceDataSource,
        store: ResultStore,
        rejection_sink: RejectionSink,
        validator: Validator | None = None,
        deriver: FeatureDeriver | None = None,
        retry_policy: RetryPolicy | None = None,
        claim_timeout_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        max_tracked_batches: int = 1000,
    ):
        self.schemas = schemas
        self.feature_sets = feature_sets
        self.scorer = scorer
        self.reference_source = reference_source
        self.store = store
        self.rejection_sink = rejection_sink
        self.validator = validator or Validator()
        self.deriver = deriver or FeatureDeriver()
        self.retry_policy = retry_policy or RetryPolicy()
        self.claim_timeout_seconds = claim_timeout_seconds
        self.sleep = sleep

        self.tracker = LineageTracker(sinks=[store.on_event], max_finished=max_tracked_batches)
        self.claims = KeyClaims()
        self._lock = threading.Lock()
        self._tokens: dict[str, CancellationToken] = {}
        self._committing: set[str] = set()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def run(self, request: BatchRequest, cancel_token: CancellationToken | None = None) -> BatchReport:
        """
        Process one batch to a terminal state.

        Fatal pipeline errors do not propagate; they are reported as a Failed
        BatchReport carrying the error kind.

        Raises:
            BatchConflict: If the batch id was already used
        """
        batch_id = request.batch_id or generate_batch_id()
        token = cancel_token or CancellationToken()

        with self._lock:
            if (
                batch_id in self._tokens
                or self.tracker.state(batch_id) is not None
                or self.store.has_batch(batch_id)
            ):
                raise BatchConflict(f"Batch id {batch_id} was already used")
            self._tokens[batch_id] = token

        run = _BatchRun(batch_id, request)

        try:
            self.tracker.start(batch_id, records=len(request.records), supersedes=request.supersedes)
            self._execute(run, token)
        except PipelineError as e:
            self._fail(run, e.kind, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error in batch {batch_id}", extra={"batch_id": batch_id})
            self._fail(run, INTERNAL_ERROR, f"{type(e).__name__}: {e}")
        finally:
            with self._lock:
                self._committing.discard(batch_id)
                self._tokens.pop(batch_id, None)

        events = self.tracker.history(batch_id)
        state = events[-1].to_state
        metrics.record_batch_outcome(
            state=state.value,
            total_records=len(request.records),
            valid_records=run.valid,
            invalid_records=len(run.rejections),
            scored_records=run.scored,
            excluded_records=len(run.derivation.excluded),
            error_kind=run.error_kind,
        )
        return run.report(state, events)

    def run_many(self, requests: list[BatchRequest], max_workers: int = 4) -> list[BatchReport]:
        """Run independent batches concurrently; reports follow request order."""
        if not requests:
            return []
        with ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="batch") as executor:
            return list(executor.map(self.run, requests))

    def reprocess(self, prior_batch_id: str, request: BatchRequest) -> BatchReport:
        """
        Run a corrective batch superseding a committed one.

        The prior batch's lineage and results are left untouched; the new
        batch gets a fresh id and records ``supersedes=prior_batch_id``.

        Raises:
            UnknownBatch: If the prior batch was never committed
        """
        self.store.get(prior_batch_id)
        batch_id = request.batch_id if request.batch_id not in (None, prior_batch_id) else None
        corrective = request.model_copy(update={"batch_id": batch_id, "supersedes": prior_batch_id})
        logger.info(
            f"Reprocessing batch {prior_batch_id}",
            extra={"prior_batch_id": prior_batch_id, "records": len(request.records)},
        )
        return self.run(corrective)

    def cancel(self, batch_id: str) -> bool:
        """
        Request cancellation of an in-flight batch.

        Returns:
            True if the cancellation was registered, False if the batch already failed

        Raises:
            BatchAlreadyCommitted: If the batch is committed or committing
            UnknownBatch: If the batch id is unknown
        """
        with self._lock:
            state = self.tracker.state(batch_id)
            if batch_id in self._committing or state == BatchState.COMMITTED:
                raise BatchAlreadyCommitted(batch_id)
            if state == BatchState.FAILED:
                return False
            token = self._tokens.get(batch_id)
            if token is None:
                if self.store.has_batch(batch_id):
                    raise BatchAlreadyCommitted(batch_id)
                raise UnknownBatch(batch_id)
            token.cancel()

        logger.info(f"Cancellation requested for batch {batch_id}", extra={"batch_id": batch_id})
        return True

    def lineage(self, batch_id: str) -> LineageEntry:
        return self.store.get(batch_id)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _execute(self, run: _BatchRun, token: CancellationToken) -> None:
        request = run.request
        batch_id = run.batch_id

        schema = self.schemas.resolve(request.schema_version)
        feature_set = self.feature_sets.resolve(request.feature_set_version)
        self.scorer.models.resolve(request.model_version)
        token.raise_if_cancelled(batch_id)

        snapshot = self._acquire_snapshot(batch_id, token)
        as_of = request.as_of or max((r.timestamp for r in request.records), default=None)
        if as_of is not None:
            as_of = ensure_utc(as_of)
        keys = {(r.identifier, as_of) for r in request.records}

        with self.claims.claim(batch_id, keys, self.claim_timeout_seconds):
            token.raise_if_cancelled(batch_id)

            self.tracker.transition(batch_id, BatchState.VALIDATING)
            with (
                log_operation(
                    "Validating batch", logger=logger, batch_id=batch_id, stage="validating", records=len(request.records)
                ),
                metrics.track_duration(metrics.stage_duration_seconds, stage="validating"),
            ):
                report = self.validator.validate(request.records, schema)
            run.rejections = report.invalid
            run.valid = len(report.valid)
            self.rejection_sink.emit(batch_id, report.invalid)
            token.raise_if_cancelled(batch_id)

            self.tracker.transition(batch_id, BatchState.DERIVING, valid=run.valid, invalid=len(run.rejections))
            if report.valid:
                with (
                    log_operation(
                        "Deriving features", logger=logger, batch_id=batch_id, stage="deriving", records=len(report.valid)
                    ),
                    metrics.track_duration(metrics.stage_duration_seconds, stage="deriving"),
                ):
                    run.derivation = self.deriver.derive(report.valid, as_of, snapshot, feature_set)
            token.raise_if_cancelled(batch_id)

            self.tracker.transition(
                batch_id,
                BatchState.SCORING,
                vectors=len(run.derivation.vectors),
                excluded=len(run.derivation.excluded),
            )
            with (
                log_operation(
                    "Scoring feature vectors",
                    logger=logger,
                    batch_id=batch_id,
                    stage="scoring",
                    vectors=len(run.derivation.vectors),
                ),
                metrics.track_duration(metrics.stage_duration_seconds, stage="scoring"),
            ):
                results = [
                    call_with_retry(
                        "model_predict",
                        lambda vector=vector: self.scorer.score(vector, request.model_version),
                        self.retry_policy,
                        sleep=self.sleep,
                        before_attempt=lambda: token.raise_if_cancelled(batch_id),
                    )
                    for vector in run.derivation.vectors
                ]

            with self._lock:
                token.raise_if_cancelled(batch_id)
                self._committing.add(batch_id)

            with (
                log_operation("Committing batch", logger=logger, batch_id=batch_id, stage="committing"),
                metrics.track_duration(metrics.stage_duration_seconds, stage="committing"),
            ):
                run.lineage = self._commit(run, schema.version, results, snapshot, as_of)
            run.scored = len(results)
            self.tracker.transition(batch_id, BatchState.COMMITTED, scored=run.scored)

    def _acquire_snapshot(self, batch_id: str, token: CancellationToken) -> ReferenceSnapshot:
        timeout = self.retry_policy.timeout_seconds

        def acquire() -> ReferenceSnapshot:
            try:
                return call_with_timeout(
                    self.reference_source.snapshot,
                    timeout,
                    lambda: ReferenceDataUnavailable(f"Reference snapshot not available within {timeout}s"),
                )
            except PipelineError:
                raise
            except Exception as e:
                raise ReferenceDataUnavailable(f"Reference snapshot acquisition failed: {e}") from e

        snapshot = call_with_retry(
            "reference_snapshot",
            acquire,
            self.retry_policy,
            sleep=self.sleep,
            before_attempt=lambda: token.raise_if_cancelled(batch_id),
        )
        logger.info(
            f"Acquired reference snapshot {snapshot.snapshot_id}",
            extra={"batch_id": batch_id, "reference_snapshot_id": snapshot.snapshot_id},
        )
        return snapshot

    def _commit(
        self,
        run: _BatchRun,
        schema_version: int,
        results: list,
        snapshot: ReferenceSnapshot,
        as_of: datetime | None,
    ) -> LineageEntry:
        request = run.request
        try:
            return self.store.record(
                run.batch_id,
                schema_version,
                request.feature_set_version,
                request.model_version,
                results,
                len(run.rejections),
                thresholds=self.scorer.ladder,
                reference_snapshot_id=snapshot.snapshot_id,
                as_of=as_of,
                total_count=len(request.records),
                valid_count=run.valid,
                excluded_count=len(run.derivation.excluded),
                supersedes=request.supersedes,
            )
        except PipelineError:
            raise
        except Exception as e:
            raise StorageWriteFailure(f"Commit of batch {run.batch_id} failed: {e}") from e

    def _fail(self, run: _BatchRun, kind: str, message: str) -> None:
        state = self.tracker.state(run.batch_id)
        if state is not None and state.terminal:
            logger.error(
                f"Batch {run.batch_id} errored after reaching {state.value}: {message}",
                extra={"batch_id": run.batch_id, "error_kind": kind},
            )
            return
        run.error_kind = kind
        run.error_message = message
        run.lineage = None
        run.scored = 0
        try:
            self.tracker.transition(run.batch_id, BatchState.FAILED, error_kind=kind, error_message=message)
        except StorageWriteFailure as e:
            # The Failed state is recorded even when the event sink is down.
            logger.error(
                f"Batch {run.batch_id} failed and its Failed event was not stored: {e.message}",
                extra={"batch_id": run.batch_id, "error_kind": kind},
            )
