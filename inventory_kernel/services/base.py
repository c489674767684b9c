"""
BaseService -- abstract base for flush-only kernel services.

Responsibility:
    Common constructor for services that write inside a caller-owned
    transaction.  Subclasses use ``session.flush()``, never
    ``session.commit()``.

Architecture position:
    Kernel > Services.  BalanceStore and MovementLedger extend this class.
    The unit of work (services/unit_of_work.py) owns commit and rollback.

Failure modes:
    - A subclass that commits on its own breaks the all-or-nothing
      guarantee of a transfer.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.
    """

    def __init__(self, session: Session):
        self.session = session
