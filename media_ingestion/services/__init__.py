"""Reconciliation services: pipeline orchestration, export, verification."""

from media_ingestion.services.export_service import ExportService
from media_ingestion.services.pipeline_service import (
    ReconciliationPipeline,
    dump_report,
    log_report_sink,
)
from media_ingestion.services.verification_service import (
    VerificationResult,
    VerificationService,
)

__all__ = [
    "ExportService",
    "ReconciliationPipeline",
    "VerificationResult",
    "VerificationService",
    "dump_report",
    "log_report_sink",
]
