from adr_enricher.db.repository import (
    ReportRepository,
    ReportUpdate,
    SqlReportRepository,
    apply_patch,
)

__all__ = ["ReportRepository", "ReportUpdate", "SqlReportRepository", "apply_patch"]
