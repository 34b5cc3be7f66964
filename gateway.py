from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Literal, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import GatewayError, NotFoundError
from models import RECORD_MODELS, RecordKind

logger = logging.getLogger(__name__)


@dataclass
class WriteOp:
    action: Literal["create", "update", "delete"]
    kind: RecordKind
    record_id: Optional[int] = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, kind: RecordKind, data: dict[str, Any]) -> WriteOp:
        return cls("create", kind, data=data)

    @classmethod
    def update(cls, kind: RecordKind, record_id: int, data: dict[str, Any]) -> WriteOp:
        return cls("update", kind, record_id=record_id, data=data)

    @classmethod
    def delete(cls, kind: RecordKind, record_id: int) -> WriteOp:
        return cls("delete", kind, record_id=record_id)


class Gateway(ABC):
    """Document-store style access to owner-scoped records."""

    @abstractmethod
    def create(self, kind: RecordKind, data: dict[str, Any]) -> int: ...

    @abstractmethod
    def update(self, kind: RecordKind, record_id: int, data: dict[str, Any]) -> None: ...

    @abstractmethod
    def delete(self, kind: RecordKind, record_id: int) -> None: ...

    @abstractmethod
    def get_by_id(self, kind: RecordKind, record_id: int) -> Optional[Any]: ...

    @abstractmethod
    def query(
        self,
        kind: RecordKind,
        filters: dict[str, Any],
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Any]:
        """Equality-filtered query; document-store backends raise MissingIndexError
        when a compound filter has no index to serve it."""

    @abstractmethod
    def batch_write(self, ops: list[WriteOp]) -> list[int]:
        """Apply every op or none; returns the ids of created records in order."""


class SqlGateway(Gateway):
    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _guard(self, action: str, kind: RecordKind) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"gateway_error: action={action} kind={kind.value}")
            raise GatewayError(f"Failed to {action} {kind.value} records") from exc

    def _load(self, kind: RecordKind, record_id: Optional[int]) -> Any:
        record = self.session.get(RECORD_MODELS[kind], record_id)
        if record is None:
            raise NotFoundError(f"{kind.value} record {record_id} not found")
        return record

    def _apply(self, op: WriteOp) -> Optional[Any]:
        if op.action == "create":
            record = RECORD_MODELS[op.kind](**op.data)
            self.session.add(record)
            return record
        record = self._load(op.kind, op.record_id)
        if op.action == "update":
            for name, value in op.data.items():
                setattr(record, name, value)
        else:
            self.session.delete(record)
        return None

    def create(self, kind: RecordKind, data: dict[str, Any]) -> int:
        return self.batch_write([WriteOp.create(kind, data)])[0]

    def update(self, kind: RecordKind, record_id: int, data: dict[str, Any]) -> None:
        self.batch_write([WriteOp.update(kind, record_id, data)])

    def delete(self, kind: RecordKind, record_id: int) -> None:
        self.batch_write([WriteOp.delete(kind, record_id)])

    def get_by_id(self, kind: RecordKind, record_id: int) -> Optional[Any]:
        with self._guard("read", kind):
            return self.session.get(RECORD_MODELS[kind], record_id)

    def query(
        self,
        kind: RecordKind,
        filters: dict[str, Any],
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Any]:
        model = RECORD_MODELS[kind]
        stmt = select(model).where(
            *(getattr(model, name) == value for name, value in filters.items())
        )
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column, model.id)
        else:
            stmt = stmt.order_by(model.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._guard("query", kind):
            return list(self.session.scalars(stmt).all())

    def batch_write(self, ops: list[WriteOp]) -> list[int]:
        if not ops:
            return []
        created: list[Any] = []
        try:
            for op in ops:
                record = self._apply(op)
                if record is not None:
                    created.append(record)
            self.session.flush()
            self.session.commit()
        except NotFoundError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"gateway_error: action=batch_write ops={len(ops)}")
            raise GatewayError("Batch write failed; no changes were applied") from exc
        return [record.id for record in created]
