"""
Report and medicine tables.

Both entities are stored as JSON documents keyed by their identifier; the
document layout matches ``ReportSnapshot`` and ``Medication``.
"""

from typing import Any, Dict

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from adr_enricher.db.base import Base


class ReportRecord(Base):
    """Stored adverse drug reaction report."""

    __tablename__ = "reports"

    document: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)


class MedicineRecord(Base):
    """Stored medicine referenced by reports."""

    __tablename__ = "medicines"

    document: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
