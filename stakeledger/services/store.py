"""Create-or-update persistence keyed by identity string."""

from typing import TypeVar

from sqlalchemy.orm import Session

from db.models import Base

T = TypeVar("T", bound=Base)


class EntityStore:
    """Thin load/save facade over a SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def load(self, model: type[T], id: str) -> T | None:
        return self.session.get(model, id)

    def add(self, entity: T) -> T:
        """Track an entity without flushing; it is written with the next save."""
        self.session.add(entity)
        return entity

    def save(self, entity: T) -> T:
        self.session.add(entity)
        self.session.flush()
        return entity
