"""
Reconciliation pipeline: read -> index -> aggregate -> transform -> resolve -> load.

Contract:
    ``ReconciliationPipeline.run()`` processes every entity type once, in
    dependency order, and returns a RunReport. It never raises for a
    per-record or per-entity problem: those are recorded on the report and
    reflected in ``RunReport.exit_code``.

Architecture: media_ingestion/services. The orchestrator is the only place
    that knows the step order; each step is a component constructed from the
    PipelineConfig.

Per entity type the state moves
    IDLE -> READING -> INDEXING -> [AGGREGATING] -> TRANSFORMING
         -> RESOLVING_IDENTITY -> LOADING -> DONE | DONE_WITH_ERRORS
with FAILED reachable from any step. FAILED is entered when:
    - the entity's own source set cannot be read (SOURCE_NOT_FOUND,
      MALFORMED_SOURCE);
    - a load-order dependency, or a source set it aggregates over, failed
      (DEPENDENCY_FAILED);
    - a whole batch was rejected after its retry (BATCH_REJECTED);
    - an operator abort halted loading (LOAD_ABORTED).
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable
from uuid import UUID, uuid4

from media_config.schema import PipelineConfig
from media_kernel.clock import Clock, SystemClock
from media_kernel.exceptions import BatchRejectedError, MediaKernelError, SourceError
from media_kernel.logging_config import LogContext, get_logger

from media_ingestion.adapters.base import SourceAdapter, SourceRows
from media_ingestion.adapters.reader import RecordReader
from media_ingestion.domain.types import (
    AGGREGATION_SOURCES,
    LOAD_DEPENDENCIES,
    SOURCE_FOR_ENTITY,
    BatchResult,
    EntityRunReport,
    EntityState,
    EntityType,
    IssueCode,
    IssueSeverity,
    RecordIssue,
    ResolvedDocument,
    RunReport,
    TransformedRecord,
)
from media_ingestion.domain.validators import RecordValidator
from media_ingestion.identity.resolver import IdentityResolver
from media_ingestion.indexing.indexer import SourceIndices
from media_ingestion.loaders.batch_loader import BatchLoader, CancellationToken, LoadMode
from media_ingestion.loaders.store import DocumentStore
from media_ingestion.mapping.engine import is_soft_deleted
from media_ingestion.mapping.transformers import TransformContext, transformer_for
from media_ingestion.services.export_service import ExportService
from media_ingestion.services.verification_service import VerificationService

logger = get_logger("ingestion.pipeline")

ReportSink = Callable[[RunReport], None]

DEPENDENCY_FAILED = "DEPENDENCY_FAILED"
LOAD_ABORTED = "LOAD_ABORTED"

# Entity types whose soft-deleted rows are skipped rather than loaded.
SOFT_DELETE_ENTITIES = frozenset({EntityType.CAMPAIGN, EntityType.MEDIA_BUY})

_LOGGED_WARNINGS = {
    IssueCode.FIELD_COERCION: "field_coercion_warning",
    IssueCode.UNMAPPED_STATUS: "unmapped_status",
    IssueCode.UNRESOLVED_USER: "unresolved_user",
}


def log_report_sink(report: RunReport) -> None:
    """Default sink: one structured log line with the whole report."""
    logger.info("run_report", extra={"report": report.to_dict()})


@dataclass
class _EntityRun:
    """Mutable per-entity accumulator; frozen into an EntityRunReport at the end."""

    entity_type: EntityType
    collection: str
    state: EntityState = EntityState.IDLE
    rows_read: int = 0
    skipped: int = 0
    transformed: int = 0
    rejected: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    orphans: int = 0
    issues: list[RecordIssue] = field(default_factory=list)
    batches: tuple[BatchResult, ...] = ()
    error_code: str | None = None
    error_message: str | None = None
    document_keys: tuple[UUID, ...] = ()

    def move(self, state: EntityState) -> None:
        logger.debug(
            "entity_state_changed",
            extra={"from_state": self.state.value, "to_state": state.value},
        )
        self.state = state

    def fail(self, code: str, message: str) -> None:
        self.error_code = code
        self.error_message = message
        self.move(EntityState.FAILED)
        logger.error("entity_run_failed", extra={"error_code": code, "error_msg": message})

    def to_report(self) -> EntityRunReport:
        return EntityRunReport(
            entity_type=self.entity_type,
            collection=self.collection,
            state=self.state,
            rows_read=self.rows_read,
            skipped=self.skipped,
            transformed=self.transformed,
            rejected=self.rejected,
            inserted=self.inserted,
            updated=self.updated,
            failed=self.failed,
            orphans=self.orphans,
            issue_counts=dict(Counter(i.code.value for i in self.issues)),
            batches=self.batches,
            error_code=self.error_code,
            error_message=self.error_message,
            document_keys=self.document_keys,
        )


class ReconciliationPipeline:
    """Runs one reconciliation of an export directory into the document store.

    Non-goals:
        - Does NOT run entity types or batches concurrently.
        - Does NOT lock the target collections against concurrent runs.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: PipelineConfig | None = None,
        clock: Clock | None = None,
        validator: RecordValidator | None = None,
        report_sink: ReportSink | None = None,
        cancellation: CancellationToken | None = None,
        adapter: SourceAdapter | None = None,
    ):
        self._store = store
        self._config = config or PipelineConfig()
        self._clock = clock or SystemClock()
        self._validator = validator
        self._report_sink = report_sink or log_report_sink
        self._cancellation = cancellation or CancellationToken()
        self._adapter = adapter

    @property
    def cancellation(self) -> CancellationToken:
        return self._cancellation

    def run(
        self,
        source_dir: Path | str,
        full_replace: bool = False,
        verify: bool = False,
        output_dir: Path | str | None = None,
        run_id: UUID | None = None,
    ) -> RunReport:
        run_id = run_id or uuid4()
        started_at = self._clock.now()
        config_hash = self._config.config_hash()

        with LogContext.bind(run_id=str(run_id)):
            logger.info(
                "run_started",
                extra={
                    "source_dir": str(source_dir),
                    "full_replace": full_replace,
                    "verify": verify,
                    "config_hash": config_hash,
                },
            )
            runs = {
                et: _EntityRun(et, self._config.collection_for(et.value).name)
                for et in EntityType
            }

            sources, source_errors = self._read_sources(source_dir, runs)
            for run in runs.values():
                if run.state != EntityState.FAILED:
                    run.move(EntityState.INDEXING)
            indices = SourceIndices.build({name: rows.rows for name, rows in sources.items()})
            logger.info("indices_built", extra={"sizes": indices.sizes})

            context = TransformContext.build(self._config, indices, self._clock)
            resolver = IdentityResolver(self._config)
            loader = BatchLoader(self._store, self._config, self._cancellation)
            exporter = ExportService(output_dir) if output_dir is not None else None
            mode = LoadMode.REPLACE if full_replace else LoadMode.UPSERT
            written: dict[EntityType, tuple[UUID, ...]] = {}

            for entity_type in EntityType:
                run = runs[entity_type]
                with LogContext.bind(entity_type=entity_type.value, collection=run.collection):
                    if not self._check_runnable(run, runs, source_errors):
                        continue
                    logger.info("entity_run_started")
                    try:
                        documents = self._transform_and_resolve(
                            run, sources[SOURCE_FOR_ENTITY[entity_type]], context, resolver
                        )
                        self._load(run, documents, loader, mode, run_id)
                    except MediaKernelError as exc:
                        run.fail(exc.code, str(exc))
                        continue
                    if exporter is not None:
                        exporter.export(run.collection, documents, resolver.mapping(entity_type))
                    if run.state != EntityState.FAILED:
                        written[entity_type] = run.document_keys
                    logger.info(
                        "entity_run_completed",
                        extra={
                            "state": run.state.value,
                            "rows_read": run.rows_read,
                            "transformed": run.transformed,
                            "inserted": run.inserted,
                            "updated": run.updated,
                            "failed": run.failed,
                            "orphans": run.orphans,
                        },
                    )

            verification_passed = None
            verification_failures: tuple[str, ...] = ()
            if verify:
                verification_passed, verification_failures = self._verify(
                    runs, written, full_replace
                )

            report = RunReport(
                run_id=run_id,
                started_at=started_at,
                finished_at=self._clock.now(),
                config_hash=config_hash,
                full_replace=full_replace,
                entities=tuple(runs[et].to_report() for et in EntityType),
                verification_passed=verification_passed,
                verification_failures=verification_failures,
                aborted=self._cancellation.is_cancelled,
            )
            logger.info(
                "run_completed",
                extra={
                    "exit_code": report.exit_code,
                    "failed_entities": [e.value for e in report.failed_entities],
                    "aborted": report.aborted,
                },
            )
            self._report_sink(report)
            return report

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _read_sources(
        self,
        source_dir: Path | str,
        runs: dict[EntityType, _EntityRun],
    ) -> tuple[dict[str, SourceRows], dict[str, SourceError]]:
        """Read every configured source set. A failed read is kept, not raised."""
        for run in runs.values():
            run.move(EntityState.READING)
        reader = RecordReader(source_dir, self._config, adapter=self._adapter)
        sources: dict[str, SourceRows] = {}
        errors: dict[str, SourceError] = {}
        for name in self._config.sources:
            try:
                sources[name] = reader.read(name)
            except SourceError as exc:
                errors[name] = exc
                logger.error(
                    "source_read_failed",
                    extra={"source": name, "error_code": exc.code},
                    exc_info=True,
                )
        for entity_type, run in runs.items():
            source_name = SOURCE_FOR_ENTITY[entity_type]
            if source_name in errors:
                with LogContext.bind(entity_type=entity_type.value, collection=run.collection):
                    run.fail(errors[source_name].code, str(errors[source_name]))
                continue
            run.rows_read = len(sources[source_name])
        return sources, errors

    def _check_runnable(
        self,
        run: _EntityRun,
        runs: dict[EntityType, _EntityRun],
        source_errors: dict[str, SourceError],
    ) -> bool:
        if run.state == EntityState.FAILED:
            return False
        if self._cancellation.is_cancelled:
            run.fail(LOAD_ABORTED, "Run aborted before this entity type started")
            return False
        failed_deps = [
            dep.value
            for dep in LOAD_DEPENDENCIES[run.entity_type]
            if runs[dep].state == EntityState.FAILED
        ]
        failed_sources = [
            name for name in AGGREGATION_SOURCES.get(run.entity_type, ()) if name in source_errors
        ]
        if failed_deps or failed_sources:
            parts = []
            if failed_deps:
                parts.append(f"failed dependencies: {', '.join(failed_deps)}")
            if failed_sources:
                parts.append(f"unreadable source sets: {', '.join(failed_sources)}")
            run.fail(DEPENDENCY_FAILED, "; ".join(parts))
            return False
        return True

    def _accept(
        self,
        run: _EntityRun,
        record: TransformedRecord,
        seen: set[str],
    ) -> bool:
        """Admission checks between transform and identity resolution."""
        if record.business_id is None:
            run.rejected += 1
            run.issues.extend(record.issues)
            return False
        if record.business_id in seen:
            run.skipped += 1
            run.issues.append(
                RecordIssue(
                    code=IssueCode.DUPLICATE_BUSINESS_ID,
                    message=f"Duplicate business id {record.business_id!r}; first row kept",
                    entity_type=run.entity_type.value,
                    business_id=record.business_id,
                )
            )
            logger.warning("duplicate_business_id", extra={"business_id": record.business_id})
            return False
        seen.add(record.business_id)
        run.issues.extend(record.issues)
        for issue in record.issues:
            if issue.code in _LOGGED_WARNINGS:
                logger.warning(
                    _LOGGED_WARNINGS[issue.code],
                    extra={
                        "business_id": issue.business_id,
                        "field": issue.field,
                        "error_msg": issue.message,
                    },
                )
        errors = [i for i in record.issues if i.severity == IssueSeverity.ERROR]
        if self._validator is not None:
            rejections = list(self._validator(record))
            run.issues.extend(rejections)
            errors.extend(rejections)
        if errors:
            run.rejected += 1
            logger.warning(
                "record_rejected",
                extra={
                    "business_id": record.business_id,
                    "codes": sorted({i.code.value for i in errors}),
                },
            )
            return False
        return True

    def _transform_and_resolve(
        self,
        run: _EntityRun,
        source: SourceRows,
        context: TransformContext,
        resolver: IdentityResolver,
    ) -> list[ResolvedDocument]:
        entity_type = run.entity_type
        rows = []
        for row in source.rows:
            if entity_type in SOFT_DELETE_ENTITIES and is_soft_deleted(row):
                run.skipped += 1
                continue
            rows.append(row)

        transformer = transformer_for(entity_type, context)
        rollups = {}
        if entity_type == EntityType.CAMPAIGN:
            run.move(EntityState.AGGREGATING)
            rollups = context.aggregator.aggregate_campaigns(
                transformer.business_id(r) for r in rows
            )

        run.move(EntityState.TRANSFORMING)
        accepted: list[TransformedRecord] = []
        seen: set[str] = set()
        for row in rows:
            bid = transformer.business_id(row)
            record = transformer.transform(row, rollups.get(bid) if bid else None)
            if self._accept(run, record, seen):
                accepted.append(record)
        run.transformed = len(accepted)

        run.move(EntityState.RESOLVING_IDENTITY)
        for record in accepted:
            resolver.register(entity_type, record.business_id)
        resolver.freeze(entity_type)

        documents: list[ResolvedDocument] = []
        for record in accepted:
            document, issues = resolver.resolve(record)
            run.issues.extend(issues)
            if document.orphan:
                run.orphans += 1
                logger.warning(
                    "orphan_record",
                    extra={
                        "business_id": document.business_id,
                        "references": document.body.get("orphanReferences"),
                    },
                )
            documents.append(document)
        return documents

    def _load(
        self,
        run: _EntityRun,
        documents: list[ResolvedDocument],
        loader: BatchLoader,
        mode: LoadMode,
        run_id: UUID,
    ) -> None:
        run.move(EntityState.LOADING)
        collection = self._config.collection_for(run.entity_type.value)
        result = loader.load(
            collection.name,
            documents,
            mode=mode,
            run_id=run_id,
            unique_fields=collection.unique_fields,
        )
        run.batches = result.batches
        run.inserted = result.inserted
        run.updated = result.updated
        run.failed = result.failed
        run.document_keys = result.written_keys
        for outcome in result.failed_records:
            run.issues.append(
                RecordIssue(
                    code=IssueCode.WRITE_FAILURE,
                    message=outcome.error or "",
                    entity_type=run.entity_type.value,
                    business_id=outcome.business_id,
                    severity=IssueSeverity.ERROR,
                )
            )

        if result.cancelled:
            run.fail(
                LOAD_ABORTED,
                f"Run aborted; {result.not_attempted} record(s) were not attempted",
            )
        elif result.rejected_batches:
            first = result.rejected_batches[0]
            exc = BatchRejectedError(
                collection.name,
                first.batch_index,
                first.attempts,
                first.failure_reasons[0] if first.failure_reasons else "",
            )
            run.fail(exc.code, str(exc))
        elif run.failed or run.rejected:
            run.move(EntityState.DONE_WITH_ERRORS)
        else:
            run.move(EntityState.DONE)

    def _verify(
        self,
        runs: dict[EntityType, _EntityRun],
        written: dict[EntityType, tuple[UUID, ...]],
        full_replace: bool,
    ) -> tuple[bool, tuple[str, ...]]:
        verifier = VerificationService(self._store)
        failures: list[str] = []
        for entity_type, keys in written.items():
            result = verifier.verify_collection(
                runs[entity_type].collection,
                keys,
                expected_count=len(keys) if full_replace else None,
            )
            failures.extend(result.failures)
        passed = not failures
        logger.info(
            "verification_completed",
            extra={"passed": passed, "failures": len(failures)},
        )
        return passed, tuple(failures)


def dump_report(report: RunReport, path: Path | str) -> Path:
    """Write a run report as JSON. Returns the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    return path
