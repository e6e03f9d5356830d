"""
Document store backed by a single SQL table.

Every record the matching engine owns (profiles, pairs, per-user views) is a
JSON document addressed by ``(collection, id)``. Writes are independent: each
call opens its own session and commits, so a sequence of calls is not atomic.
``transaction()`` hands out a store bound to one session for callers that want
several writes to land together.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from .database import SessionLocal
from .errors import DocumentNotFound, StoreUnavailable
from .models import Document

logger = logging.getLogger(__name__)


def _field_equals(key: str, value: Any):
    field = Document.data[key]
    # bool before int: True is an int
    if isinstance(value, bool):
        return field.as_boolean() == value
    if isinstance(value, int):
        return field.as_integer() == value
    if isinstance(value, float):
        return field.as_float() == value
    if isinstance(value, str):
        return field.as_string() == value
    raise TypeError(f"unsupported filter value for {key!r}: {value!r}")


class DocumentStore:
    def __init__(self, session_factory=SessionLocal, *, session=None) -> None:
        self._session_factory = session_factory
        self._session = session

    @property
    def in_transaction(self) -> bool:
        return self._session is not None

    @contextmanager
    def _db(self) -> Iterator[Any]:
        try:
            if self._session is not None:
                yield self._session
                self._session.flush()
                return
            with self._session_factory() as db:
                yield db
                db.commit()
        except OperationalError as exc:
            logger.warning("[store] database unavailable: %s", exc)
            raise StoreUnavailable(str(exc)) from exc

    @contextmanager
    def transaction(self) -> Iterator["DocumentStore"]:
        if self._session is not None:
            yield self
            return
        try:
            with self._session_factory() as db:
                bound = copy.copy(self)
                bound._session = db
                yield bound
                db.commit()
        except OperationalError as exc:
            logger.warning("[store] transaction aborted: %s", exc)
            raise StoreUnavailable(str(exc)) from exc

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            row = db.get(Document, (collection, doc_id))
            return copy.deepcopy(row.data) if row is not None else None

    def set_document(self, collection: str, doc_id: str, value: dict[str, Any], merge: bool = False) -> None:
        with self._db() as db:
            row = db.get(Document, (collection, doc_id))
            data = copy.deepcopy(value)
            if row is None:
                db.add(Document(collection=collection, id=doc_id, data=data))
                return
            if merge:
                data = {**copy.deepcopy(row.data), **data}
            row.data = data

    def update_document(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        with self._db() as db:
            row = db.get(Document, (collection, doc_id))
            if row is None:
                raise DocumentNotFound(collection, doc_id)
            row.data = {**copy.deepcopy(row.data), **copy.deepcopy(fields)}

    def query_documents(self, collection: str, filters: dict[str, Any] | None = None) -> list[tuple[str, dict[str, Any]]]:
        stmt = select(Document).where(Document.collection == collection)
        for key, value in (filters or {}).items():
            stmt = stmt.where(_field_equals(key, value))
        with self._db() as db:
            rows = db.scalars(stmt.order_by(Document.id)).all()
            return [(row.id, copy.deepcopy(row.data)) for row in rows]
