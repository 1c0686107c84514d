"""
Read-only query base.

Selectors run inside a session the caller owns and hand back frozen DTOs,
never ORM instances, so nothing they return can be flushed back by
accident.  They never add, delete, flush or commit.
"""

from abc import ABC
from typing import Any

from sqlalchemy import Select
from sqlalchemy.orm import Session


class BaseSelector(ABC):
    def __init__(self, session: Session):
        self.session = session

    def _dtos(self, stmt: Select) -> tuple[Any, ...]:
        """Run ``stmt`` and convert every model row with ``to_dto()``."""
        return tuple(model.to_dto() for model in self.session.execute(stmt).scalars())
