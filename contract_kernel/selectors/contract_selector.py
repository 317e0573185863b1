"""
Module: contract_kernel.selectors.contract_selector
Responsibility: Read-only access to contracts together with their tracks.

Failure modes:
    - Returns None / empty list when nothing matches; never raises on absence.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select

from contract_kernel.domain.dtos import ContractView
from contract_kernel.domain.workflow import ContractStatus
from contract_kernel.models.approval_track import ApprovalTrack
from contract_kernel.models.contract import Contract
from contract_kernel.selectors.base import BaseSelector


class ContractSelector(BaseSelector[Contract]):
    """Contract queries returning ContractView DTOs."""

    def get_view(self, contract_id: UUID) -> ContractView | None:
        contract = self.session.get(Contract, contract_id)
        if contract is None:
            return None
        return self._views([contract])[0]

    def list_by_status(
        self,
        status: ContractStatus,
        limit: int = 100,
    ) -> list[ContractView]:
        """Contracts in ``status``, most recently updated first."""
        contracts = self.session.execute(
            select(Contract)
            .where(Contract.status == status.value)
            .order_by(Contract.updated_at.desc(), Contract.id)
            .limit(limit)
        ).scalars().all()
        return self._views(contracts)

    def list_created_by(self, actor_id: UUID, limit: int = 100) -> list[ContractView]:
        """Contracts an actor authored, most recently updated first."""
        contracts = self.session.execute(
            select(Contract)
            .where(Contract.created_by_id == actor_id)
            .order_by(Contract.updated_at.desc(), Contract.id)
            .limit(limit)
        ).scalars().all()
        return self._views(contracts)

    def _views(self, contracts) -> list[ContractView]:
        if not contracts:
            return []
        ids = [c.id for c in contracts]
        tracks = self.session.execute(
            select(ApprovalTrack)
            .where(ApprovalTrack.contract_id.in_(ids))
            .order_by(ApprovalTrack.created_at, ApprovalTrack.track_type, ApprovalTrack.cycle)
        ).scalars().all()

        by_contract = defaultdict(list)
        for track in tracks:
            by_contract[track.contract_id].append(track.to_dto())

        return [
            ContractView(contract=c.to_dto(), tracks=tuple(by_contract[c.id]))
            for c in contracts
        ]
