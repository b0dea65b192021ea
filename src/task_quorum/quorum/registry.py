"""Local operator registry and the collaborators built on top of it."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from task_quorum.quorum.models import OperatorView
from task_quorum.quorum.signatures import decode_public_key, verify_response_signature
from task_quorum.storage.common import build_sqlite_engine, now_ms
from task_quorum.storage.sqlmodel_models import OperatorRow

logger = logging.getLogger(__name__)


class OperatorRegistry:
    """Persistence facade for registered operators."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def register_operator(self, *, operator_id: str, public_key: str) -> OperatorView:
        """Register a new operator, or reactivate one with the same key."""

        decode_public_key(public_key)
        with Session(self.engine) as session:
            row = OperatorRow(
                operator_id=operator_id,
                public_key=public_key,
                active=True,
                registered_at_ms=now_ms(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                existing = session.get(OperatorRow, operator_id)
                if existing is None:
                    raise
                if existing.public_key != public_key:
                    raise ValueError(
                        f"Operator {operator_id} is already registered with a different key.",
                    ) from error
                existing.active = True
                session.add(existing)
                session.commit()
                row = existing
            session.refresh(row)
            logger.info("Operator %s registered", operator_id)
            return _to_operator_view(row)

    def deactivate_operator(self, *, operator_id: str) -> bool:
        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(OperatorRow)
                .where(col(OperatorRow.operator_id) == operator_id)
                .values(active=False),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
        logger.info("Operator %s deactivated", operator_id)
        return True

    def get_operator(self, operator_id: str) -> OperatorView | None:
        with Session(self.engine) as session:
            row = session.get(OperatorRow, operator_id)
            return _to_operator_view(row) if row is not None else None

    def list_operators(self, *, active_only: bool = False) -> list[OperatorView]:
        with Session(self.engine) as session:
            statement = select(OperatorRow)
            if active_only:
                statement = statement.where(col(OperatorRow.active).is_(True))
            rows = session.exec(statement.order_by(col(OperatorRow.operator_id).asc())).all()
        return [_to_operator_view(row) for row in rows]

    def count_active_operators(self) -> int:
        with Session(self.engine) as session:
            return session.exec(
                select(func.count())
                .select_from(OperatorRow)
                .where(col(OperatorRow.active).is_(True)),
            ).one()


class RegistryOperatorDirectory:
    """Operator directory that reads eligibility from the local registry."""

    def __init__(self, registry: OperatorRegistry) -> None:
        self.registry = registry

    def current_operator_count(self) -> int:
        return self.registry.count_active_operators()

    def is_eligible(self, operator_id: str) -> bool:
        operator = self.registry.get_operator(operator_id)
        return operator is not None and operator.active


class Ed25519ResponseAuthenticator:
    """Checks response signatures against keys stored in the registry."""

    def __init__(self, registry: OperatorRegistry) -> None:
        self.registry = registry

    def verify(self, task_id: int, response: str, operator_id: str, signature: str) -> bool:
        operator = self.registry.get_operator(operator_id)
        if operator is None:
            return False
        try:
            public_key = decode_public_key(operator.public_key)
        except ValueError:
            logger.warning("Operator %s has a malformed public key on record", operator_id)
            return False
        return verify_response_signature(public_key, task_id, response, signature)


def _to_operator_view(row: OperatorRow) -> OperatorView:
    return OperatorView(
        operator_id=row.operator_id,
        public_key=row.public_key,
        active=row.active,
        registered_at_ms=row.registered_at_ms,
    )
