"""
Module: contract_kernel.models.contract
Responsibility: ORM persistence for contracts.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - status is one of ContractStatus (DB check constraint).
    - At least one review discipline is required (DB check constraint).
    - version is the optimistic concurrency token: every UPDATE is
      ``... WHERE version = :old`` and bumps it by one (mapper
      version_id_col).  A zero-row update raises StaleDataError, which the
      workflow engine reports as ConflictError.
    - review_round starts at 1 and grows by one each time a contract
      leaves REVISION_REQUESTED; only tracks of the current round count
      toward its status.
    - Contracts are never deleted; closed contracts are frozen
      (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from contract_kernel.db.base import Base
from contract_kernel.domain.workflow import ContractStatus

if TYPE_CHECKING:
    from contract_kernel.domain.dtos import ContractSnapshot

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in ContractStatus)


class Contract(Base):
    """Persistent contract.

    Contract:
        ``status`` is a cached value that the workflow engine keeps equal to
        ``derive_contract_status`` over the contract's approval tracks.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_STATUS_VALUES})",
            name="ck_contracts_valid_status",
        ),
        CheckConstraint(
            "requires_legal OR requires_finance",
            name="ck_contracts_requires_review",
        ),
        Index("ix_contracts_status_updated", "status", "updated_at"),
        Index("ix_contracts_created_by", "created_by_id"),
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(40), nullable=False, default=ContractStatus.DRAFT.value,
    )
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    counterparty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    counterparty_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    requires_legal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_finance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    review_round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_by_id: Mapped[UUID] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    signed_attachment_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Contract {self.id} status={self.status} v{self.version}>"

    def to_dto(self) -> ContractSnapshot:
        """Convert ORM model to frozen domain DTO."""
        from contract_kernel.domain.dtos import ContractSnapshot

        return ContractSnapshot(
            id=self.id,
            title=self.title,
            status=ContractStatus(self.status),
            version=self.version,
            requires_legal=self.requires_legal,
            requires_finance=self.requires_finance,
            review_round=self.review_round,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            amount=self.amount,
            currency=self.currency,
            counterparty_name=self.counterparty_name,
            counterparty_email=self.counterparty_email,
            description=self.description,
            submitted_at=self.submitted_at,
            approved_at=self.approved_at,
            sent_at=self.sent_at,
            signed_at=self.signed_at,
            signed_attachment_ref=self.signed_attachment_ref,
            cancelled_at=self.cancelled_at,
            cancellation_reason=self.cancellation_reason,
        )
