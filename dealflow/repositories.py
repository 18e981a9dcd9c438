"""Read access to the entities the matching engine scores against."""
from __future__ import annotations

from typing import Any, Generic, Protocol, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from dealflow.models import CapitalProvider, EntityKind, Fund, Fundraiser, Partner

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

MODEL_FOR_KIND: dict[EntityKind, type] = {
    EntityKind.FUNDRAISER: Fundraiser,
    EntityKind.CAPITAL_PROVIDER: CapitalProvider,
    EntityKind.PARTNER: Partner,
}


class EntityReader(Protocol[T_co]):
    def get_all(self) -> Sequence[T_co]: ...

    def get_by_id(self, entity_id: int) -> T_co | None: ...


class FundReader(Protocol):
    def get_funds_for_provider(self, provider_id: int) -> Sequence[Any]: ...


class SqlEntityReader(Generic[T]):
    """Entity reads for one ORM model, ordered by id for a stable enumeration."""

    def __init__(self, session: Session, model: type[T]):
        self.session = session
        self.model = model

    def get_all(self) -> Sequence[T]:
        return self.session.execute(select(self.model).order_by(self.model.id)).scalars().all()

    def get_by_id(self, entity_id: int) -> T | None:
        return self.session.get(self.model, entity_id)


class SqlFundReader:
    def __init__(self, session: Session):
        self.session = session

    def get_funds_for_provider(self, provider_id: int) -> Sequence[Fund]:
        return self.session.execute(
            select(Fund).where(Fund.provider_id == provider_id).order_by(Fund.id)
        ).scalars().all()


def reader_for(session: Session, kind: EntityKind) -> SqlEntityReader:
    return SqlEntityReader(session, MODEL_FOR_KIND[kind])
