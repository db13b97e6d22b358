"""
School-scoped persistence collaborator.

CRITICAL: All operations MUST include school_id.
No query can return data from another school, even when the match criteria
omit school_id or name a different one.

ScopedStore is the interface the access engine depends on;
SqlAlchemyScopedStore is the SQLAlchemy-backed implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from access_engine.errors import TenantIsolationError, UnknownEntityError, require
from access_engine.models import ENTITY_MODELS

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

# Field names used by API payloads that differ from the mapped attribute.
_FIELD_ALIASES = {
    "metadata": "event_metadata",
    "created_date": "created_at",
    "updated_date": "updated_at",
}

_SCOPE_FIELD = "school_id"


class ScopedStore(ABC):
    """
    Generic school-scoped access to entity collections.

    Timeouts and retries are the implementation's concern; the engine treats
    any exception raised here as a propagated failure.
    """

    @abstractmethod
    async def filter(
        self,
        entity: str,
        school_id: str,
        criteria: Optional[Dict[str, Any]] = None,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Return records of entity in school_id matching criteria."""

    @abstractmethod
    async def create(self, entity: str, school_id: str, fields: Dict[str, Any]) -> Record:
        """Create a record; assigns id, school_id and creation timestamp."""

    @abstractmethod
    async def update(
        self,
        entity: str,
        record_id: str,
        fields: Dict[str, Any],
        school_id: str,
        enforce_ownership: bool = True,
    ) -> Optional[Record]:
        """Update a record of school_id. None if it does not exist there."""

    @abstractmethod
    async def delete(
        self,
        entity: str,
        record_id: str,
        school_id: str,
        enforce_ownership: bool = True,
    ) -> None:
        """Delete a record of school_id."""

    @abstractmethod
    def supports_normalized_questions(self) -> bool:
        """Whether the normalized QuizQuestion collection is available."""


class SqlAlchemyScopedStore(ScopedStore):
    """
    ScopedStore over a SQLAlchemy session.

    All queries are automatically scoped by school_id. school_id present in a
    create/update payload is IGNORED; the scope argument always wins.
    """

    def __init__(self, db_session: Session, normalized_questions: bool = True):
        self.db_session = db_session
        self._normalized_questions = normalized_questions

    def supports_normalized_questions(self) -> bool:
        return self._normalized_questions

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _model(entity: str):
        model = ENTITY_MODELS.get(entity)
        if model is None:
            raise UnknownEntityError(f"Unknown entity: {entity}")
        return model

    @staticmethod
    def _column(model, name: str):
        attr_name = _FIELD_ALIASES.get(name, name)
        if attr_name not in model.__mapper__.column_attrs.keys():
            raise UnknownEntityError(f"Unknown field {name} on {model.__name__}")
        return attr_name, getattr(model, attr_name)

    def _strip_scope(self, entity: str, fields: Dict[str, Any], school_id: str) -> Dict[str, Any]:
        payload = dict(fields or {})
        if _SCOPE_FIELD in payload:
            logger.warning(
                "school_id found in payload, removing it",
                extra={
                    "entity": entity,
                    "scope_school_id": school_id,
                    "removed_school_id": payload.pop(_SCOPE_FIELD),
                },
            )
        return payload

    def _get_row(self, model, record_id: str):
        return self.db_session.query(model).filter(model.id == record_id).first()

    def _check_ownership(self, entity: str, row, record_id: str, school_id: str,
                         enforce_ownership: bool, operation: str) -> bool:
        if row.school_id == school_id:
            return True
        if enforce_ownership:
            logger.error(
                "School ID mismatch detected",
                extra={
                    "entity": entity,
                    "record_id": record_id,
                    "scope_school_id": school_id,
                    "operation": operation,
                },
            )
            raise TenantIsolationError(
                f"{entity} {record_id} does not belong to school {school_id}"
            )
        return False

    # ------------------------------------------------------------------
    # ScopedStore
    # ------------------------------------------------------------------

    async def filter(
        self,
        entity: str,
        school_id: str,
        criteria: Optional[Dict[str, Any]] = None,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        require(school_id, "school_id")
        model = self._model(entity)

        query = self.db_session.query(model).filter(model.school_id == school_id)

        for key, value in (criteria or {}).items():
            if key == _SCOPE_FIELD:
                if value != school_id:
                    logger.warning(
                        "Cross-school filter requested, returning nothing",
                        extra={"entity": entity, "scope_school_id": school_id},
                    )
                    return []
                continue
            _, column = self._column(model, key)
            if isinstance(value, (list, tuple, set)):
                query = query.filter(column.in_(list(value)))
            elif value is None:
                query = query.filter(column.is_(None))
            else:
                query = query.filter(column == value)

        if sort:
            descending = sort.startswith("-")
            _, column = self._column(model, sort.lstrip("-"))
            query = query.order_by(column.desc() if descending else column.asc())

        if limit:
            query = query.limit(limit)

        return [row.to_record() for row in query.all()]

    async def create(self, entity: str, school_id: str, fields: Dict[str, Any]) -> Record:
        require(school_id, "school_id")
        model = self._model(entity)
        payload = self._strip_scope(entity, fields, school_id)

        values = {}
        for key, value in payload.items():
            attr_name, _ = self._column(model, key)
            values[attr_name] = value
        values[_SCOPE_FIELD] = school_id

        row = model(**values)
        self.db_session.add(row)

        try:
            self.db_session.commit()
            self.db_session.refresh(row)
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to create record",
                extra={"entity": entity, "school_id": school_id, "error": str(e)},
            )
            raise

        logger.info(
            "Record created",
            extra={"entity": entity, "school_id": school_id, "record_id": row.id},
        )
        return row.to_record()

    async def update(
        self,
        entity: str,
        record_id: str,
        fields: Dict[str, Any],
        school_id: str,
        enforce_ownership: bool = True,
    ) -> Optional[Record]:
        require(school_id, "school_id")
        require(record_id, "record_id")
        model = self._model(entity)
        payload = self._strip_scope(entity, fields, school_id)

        row = self._get_row(model, record_id)
        if row is None:
            return None
        if not self._check_ownership(entity, row, record_id, school_id, enforce_ownership, "update"):
            return None

        for key, value in payload.items():
            attr_name, _ = self._column(model, key)
            setattr(row, attr_name, value)

        try:
            self.db_session.commit()
            self.db_session.refresh(row)
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to update record",
                extra={"entity": entity, "school_id": school_id, "record_id": record_id, "error": str(e)},
            )
            raise

        logger.info(
            "Record updated",
            extra={"entity": entity, "school_id": school_id, "record_id": record_id},
        )
        return row.to_record()

    async def delete(
        self,
        entity: str,
        record_id: str,
        school_id: str,
        enforce_ownership: bool = True,
    ) -> None:
        require(school_id, "school_id")
        require(record_id, "record_id")
        model = self._model(entity)

        row = self._get_row(model, record_id)
        if row is None:
            return
        if not self._check_ownership(entity, row, record_id, school_id, enforce_ownership, "delete"):
            return

        try:
            self.db_session.delete(row)
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to delete record",
                extra={"entity": entity, "school_id": school_id, "record_id": record_id, "error": str(e)},
            )
            raise

        logger.info(
            "Record deleted",
            extra={"entity": entity, "school_id": school_id, "record_id": record_id},
        )
