"""Shared dataclasses for stakeledger services."""

from stakeledger.services.schemas.events import (
    EVENT_CLASSES,
    AllocationClosed,
    AllocationCollected,
    AllocationCreated,
    BlockRef,
    ChainEvent,
    DelegationParametersUpdated,
    RebateClaimed,
    RewardsAssigned,
    StakeDelegated,
    StakeDelegatedLocked,
    StakeDelegatedWithdrawn,
    StakeDeposited,
    StakeLocked,
    StakeSlashed,
    StakeWithdrawn,
    parse_event,
)
from stakeledger.services.schemas.results import ProcessingResult, RewardSplit

__all__ = [
    # Event schemas
    "EVENT_CLASSES",
    "AllocationClosed",
    "AllocationCollected",
    "AllocationCreated",
    "BlockRef",
    "ChainEvent",
    "DelegationParametersUpdated",
    "RebateClaimed",
    "RewardsAssigned",
    "StakeDelegated",
    "StakeDelegatedLocked",
    "StakeDelegatedWithdrawn",
    "StakeDeposited",
    "StakeLocked",
    "StakeSlashed",
    "StakeWithdrawn",
    "parse_event",
    # Result schemas
    "ProcessingResult",
    "RewardSplit",
]
