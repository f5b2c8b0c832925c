"""
Report repository.

This module defines the repository interface the processor talks to and its
SQLAlchemy implementation. Updates are expressed as merge patches over the
stored JSON document so that fields the processor does not own are preserved.
"""

import abc
import asyncio
import copy
import functools
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from adr_enricher.db.base import Base
from adr_enricher.db.models import MedicineRecord, ReportRecord
from adr_enricher.models.report import Medication, ReportSnapshot

logger = structlog.get_logger(__name__)


class ReportUpdate(BaseModel):
    """
    Partial update of a report document.

    Paths are dotted; a purely numeric segment indexes into a list, so
    ``side_effects.0.ai_severity`` targets the first side effect.
    """

    set_fields: Dict[str, Any] = Field(default_factory=dict, description="Paths to overwrite")
    increments: Dict[str, int] = Field(default_factory=dict, description="Numeric paths to increment")

    def is_empty(self) -> bool:
        return not self.set_fields and not self.increments


def _split(path: str) -> List[Union[str, int]]:
    return [int(part) if part.isdigit() else part for part in path.split(".")]


def _parent(document: Dict[str, Any], path: str):
    parts = _split(path)
    node: Any = document

    for part in parts[:-1]:
        if isinstance(part, int):
            if not isinstance(node, list) or part >= len(node):
                raise ValueError(f"Invalid list index in path: {path}")
            node = node[part]
        else:
            if not isinstance(node, dict):
                raise ValueError(f"Cannot traverse non-object in path: {path}")
            if not isinstance(node.get(part), (dict, list)):
                node[part] = {}
            node = node[part]

    last = parts[-1]
    if isinstance(last, int):
        if not isinstance(node, list) or last >= len(node):
            raise ValueError(f"Invalid list index in path: {path}")
    elif not isinstance(node, dict):
        raise ValueError(f"Cannot set field on non-object in path: {path}")

    return node, last


def apply_patch(document: Dict[str, Any], update: ReportUpdate) -> Dict[str, Any]:
    """
    Apply a merge patch to a document in place.

    Args:
        document: Stored document
        update: Fields to set and increment

    Returns:
        The patched document

    Raises:
        ValueError: If a path cannot be resolved against the document
    """
    for path, value in update.set_fields.items():
        node, key = _parent(document, path)
        node[key] = to_jsonable_python(value)

    for path, amount in update.increments.items():
        node, key = _parent(document, path)
        current = node[key] if isinstance(key, int) else node.get(key)
        node[key] = (current or 0) + amount

    return document


class ReportRepository(abc.ABC):
    """Persistence operations needed to enrich a report."""

    @abc.abstractmethod
    async def find_by_id(self, report_id: str) -> Optional[ReportSnapshot]:
        """Return the report, or None if it does not exist."""

    @abc.abstractmethod
    async def find_medicine_by_id(self, medicine_id: str) -> Optional[Medication]:
        """Return the medicine, or None if it does not exist."""

    @abc.abstractmethod
    async def apply_update(self, report_id: str, update: ReportUpdate) -> bool:
        """
        Atomically apply an update to one report.

        Returns:
            True if the report existed and was updated
        """


class SqlReportRepository(ReportRepository):
    """
    SQLAlchemy-backed repository.

    The synchronous session work runs on the default executor so the event
    loop is never blocked by the database driver.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        """
        Initialize the repository.

        Args:
            database_url: SQLAlchemy database URL
            engine: Pre-built engine, takes precedence over the URL
        """
        if engine is None:
            if not database_url:
                raise ValueError("Either database_url or engine is required")
            connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
            engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def init_db(self) -> None:
        """Create the tables if they do not exist."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables ensured", url=self.engine.url.render_as_string(hide_password=True))

    async def _run(self, fn: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    async def find_by_id(self, report_id: str) -> Optional[ReportSnapshot]:
        document = await self._run(self._load_document, ReportRecord, report_id)
        if document is None:
            return None
        return ReportSnapshot.model_validate(document)

    async def find_medicine_by_id(self, medicine_id: str) -> Optional[Medication]:
        document = await self._run(self._load_document, MedicineRecord, medicine_id)
        if document is None:
            return None
        return Medication.model_validate(document)

    async def apply_update(self, report_id: str, update: ReportUpdate) -> bool:
        return await self._run(self._apply_update, report_id, update)

    def _load_document(self, model, record_id: str) -> Optional[Dict[str, Any]]:
        db = self.SessionLocal()
        try:
            record = model.get_by_id(db, record_id)
            if record is None:
                return None
            return {**copy.deepcopy(record.document), "id": record.id}
        finally:
            db.close()

    def _apply_update(self, report_id: str, update: ReportUpdate) -> bool:
        db = self.SessionLocal()
        try:
            record = ReportRecord.get_by_id(db, report_id, for_update=True)
            if record is None:
                logger.warning("Report not found for update", report_id=report_id)
                return False

            if update.is_empty():
                return True

            document = apply_patch(copy.deepcopy(record.document), update)
            record.document = document
            db.commit()

            logger.info("Report updated", report_id=report_id,
                        fields=sorted(update.set_fields), increments=sorted(update.increments))
            return True

        except (SQLAlchemyError, ValueError) as e:
            db.rollback()
            logger.error("Error updating report", report_id=report_id, error=str(e))
            raise

        finally:
            db.close()

    def save_report(self, document: Dict[str, Any]) -> str:
        """
        Insert or replace a report document.

        Returns:
            The report ID
        """
        return self._save(ReportRecord, document)

    def save_medicine(self, document: Dict[str, Any]) -> str:
        """
        Insert or replace a medicine document.

        Returns:
            The medicine ID
        """
        return self._save(MedicineRecord, document)

    def _save(self, model, document: Dict[str, Any]) -> str:
        document = to_jsonable_python(document)
        record_id = document.pop("id", None) or document.pop("_id", None)
        if not record_id:
            raise ValueError("Document must carry an id")

        db = self.SessionLocal()
        try:
            record = model.get_by_id(db, record_id)
            if record is None:
                db.add(model(id=record_id, document=document))
            else:
                record.document = document
            db.commit()
            return record_id
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
