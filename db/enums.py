"""Enumeration types for the indexer stake ledger."""

from enum import Enum


class EventType(str, Enum):
    """Decoded staking-protocol events the ledger consumes."""

    STAKE_DEPOSITED = "StakeDeposited"
    STAKE_LOCKED = "StakeLocked"
    STAKE_WITHDRAWN = "StakeWithdrawn"
    STAKE_SLASHED = "StakeSlashed"
    STAKE_DELEGATED = "StakeDelegated"
    STAKE_DELEGATED_LOCKED = "StakeDelegatedLocked"
    STAKE_DELEGATED_WITHDRAWN = "StakeDelegatedWithdrawn"
    ALLOCATION_CREATED = "AllocationCreated"
    ALLOCATION_COLLECTED = "AllocationCollected"
    ALLOCATION_CLOSED = "AllocationClosed"
    REWARDS_ASSIGNED = "RewardsAssigned"
    REBATE_CLAIMED = "RebateClaimed"
    DELEGATION_PARAMETERS_UPDATED = "DelegationParametersUpdated"


class RunStatus(str, Enum):
    """Status of a replay run."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"
