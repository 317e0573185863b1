"""
BaseService -- abstract base for kernel services.

Services receive a SQLAlchemy ``Session`` and persist through
``session.flush()`` only.  They never commit or roll back: the workflow
engine's ``session_scope`` owns the transaction, so the state change and
its audit row land together or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from contract_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
