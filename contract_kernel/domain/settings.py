"""
WorkflowSettings -- tunables the workflow engine reads.

Built from configuration by ``contract_config.bridges``; the kernel never
reads configuration files itself.  Defaults match the shipped default set.
"""

from __future__ import annotations

from dataclasses import dataclass

from contract_kernel.domain.workflow import (
    EXECUTION_STATUSES,
    ContractStatus,
    TrackType,
)

DEFAULT_CANCELLATION_COMMENT = "Contract cancelled: {reason}"


@dataclass(frozen=True)
class WorkflowSettings:
    """
    Engine tunables.

    Attributes:
        min_approval_comment_length: Minimum stripped length of an approval
            comment.
        default_required_tracks: Review disciplines a new contract requires
            when the caller does not say.
        execution_status: Status reached when the signed copy is uploaded
            (ACTIVE or EXECUTED).
        cancellation_comment: System comment written on tracks that a
            cancel forces to REJECTED; ``{reason}`` is substituted.
    """

    min_approval_comment_length: int = 10
    default_required_tracks: frozenset[TrackType] = frozenset(
        {TrackType.LEGAL, TrackType.FINANCE}
    )
    execution_status: ContractStatus = ContractStatus.ACTIVE
    cancellation_comment: str = DEFAULT_CANCELLATION_COMMENT

    def __post_init__(self) -> None:
        if self.min_approval_comment_length < 0:
            raise ValueError("min_approval_comment_length must be >= 0")
        if not self.default_required_tracks:
            raise ValueError("default_required_tracks must not be empty")
        if self.execution_status not in EXECUTION_STATUSES:
            raise ValueError(
                f"execution_status must be one of "
                f"{sorted(s.value for s in EXECUTION_STATUSES)}"
            )

    def cancellation_comment_for(self, reason: str) -> str:
        return self.cancellation_comment.replace("{reason}", reason)
