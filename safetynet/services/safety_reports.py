"""
safetynet/services/safety_reports.py
Safety report submission: classify the description, persist the report,
raise a critical alert for Critical reports.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from safetynet.detectors.severity import SeverityService
from safetynet.models.record import SEVERITY_CRITICAL, SafetyReport
from safetynet.storage.base import ReportStore

logger = logging.getLogger(__name__)

AlertHook = Callable[[SafetyReport], None]


def log_critical_alert(report: SafetyReport) -> None:
    """Default alert hook. Delivery to admins is an external collaborator."""
    logger.warning(
        f"CRITICAL safety report {report.id} from {report.reporter_id}: {report.subject}"
    )


class SafetyReportService:

    def __init__(
        self,
        report_store: ReportStore,
        severity:     Optional[SeverityService] = None,
        on_critical:  Optional[AlertHook]       = log_critical_alert,
    ):
        self.report_store = report_store
        self.severity     = severity or SeverityService()
        self.on_critical  = on_critical

    def analyze(self, description: str) -> str:
        return self.severity.classify(description)

    def submit_report(
        self,
        reporter_id:      str,
        subject:          str,
        description:      str,
        reported_user_id: Optional[str] = None,
        use_external:     bool          = False,
    ) -> SafetyReport:
        if not (reporter_id or '').strip():
            raise ValueError("reporter_id is required")

        if use_external:
            level = self.severity.classify_with_external_sync(description)
        else:
            level = self.severity.classify(description)

        report = SafetyReport(
            id               = str(uuid.uuid4()),
            reporter_id      = reporter_id,
            subject          = subject or '',
            description      = description or '',
            severity_level   = level,
            created_at       = datetime.now(timezone.utc),
            reported_user_id = reported_user_id,
        )
        self.report_store.insert(report)
        logger.info(f"Safety report {report.id} stored with severity {level}")

        if level == SEVERITY_CRITICAL and self.on_critical is not None:
            try:
                self.on_critical(report)
            except Exception as e:
                logger.error(f"Critical alert failed for report {report.id}: {e}")

        return report

    def get_user_reports(self, reporter_id: str) -> List[SafetyReport]:
        return self.report_store.list_by_reporter(reporter_id)
