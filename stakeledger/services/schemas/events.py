"""Decoded staking-protocol events consumed by the ledger.

Amounts are raw on-chain integers: tokens in base units, shares as minted or
burned by the staking contract, fee cuts in parts per million.
"""

import re
from dataclasses import dataclass, fields
from typing import ClassVar

from db.enums import EventType
from stakeledger.services.errors import InvalidEventError

_INTEGER_TEXT: re.Pattern[str] = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class BlockRef:
    number: int
    timestamp: int


@dataclass(frozen=True)
class ChainEvent:
    event_type: ClassVar[EventType]
    # Fields holding raw non-negative integers.
    amount_fields: ClassVar[tuple[str, ...]] = ()

    block: BlockRef
    indexer: str

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ChainEvent":
        block_raw: object = data.get("block")
        if isinstance(block_raw, dict):
            block: BlockRef = BlockRef(
                number=_as_int(block_raw, "number"), timestamp=_as_int(block_raw, "timestamp")
            )
        else:
            block = BlockRef(
                number=_as_int(data, "block_number"), timestamp=_as_int(data, "block_timestamp")
            )
        kwargs: dict[str, object] = {"block": block}
        for f in fields(cls):
            if f.name == "block":
                continue
            if f.type is int:
                kwargs[f.name] = _as_int(data, f.name)
            else:
                kwargs[f.name] = _as_str(data, f.name)
        return cls(**kwargs)


def _as_int(data: dict[str, object], key: str) -> int:
    if key not in data:
        raise InvalidEventError(f"Missing field '{key}'")
    raw: object = data[key]
    # JSON integers or decimal digit strings only.
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and _INTEGER_TEXT.fullmatch(raw):
        return int(raw)
    raise InvalidEventError(f"Field '{key}' must be an integer, got {raw!r}")


def _as_str(data: dict[str, object], key: str) -> str:
    raw: object = data.get(key)
    if not isinstance(raw, str) or not raw:
        raise InvalidEventError(f"Field '{key}' must be a non-empty string")
    return raw


# -- Self stake ---------------------------------------------------------------


@dataclass(frozen=True)
class StakeDeposited(ChainEvent):
    event_type = EventType.STAKE_DEPOSITED
    amount_fields = ("tokens",)

    tokens: int


@dataclass(frozen=True)
class StakeLocked(ChainEvent):
    event_type = EventType.STAKE_LOCKED
    amount_fields = ("tokens", "until")

    tokens: int
    until: int


@dataclass(frozen=True)
class StakeWithdrawn(ChainEvent):
    event_type = EventType.STAKE_WITHDRAWN
    amount_fields = ("tokens",)

    tokens: int


@dataclass(frozen=True)
class StakeSlashed(ChainEvent):
    event_type = EventType.STAKE_SLASHED
    amount_fields = ("tokens", "reward")

    tokens: int
    reward: int
    beneficiary: str


# -- Delegation ---------------------------------------------------------------


@dataclass(frozen=True)
class StakeDelegated(ChainEvent):
    event_type = EventType.STAKE_DELEGATED
    amount_fields = ("tokens", "shares")

    delegator: str
    tokens: int
    shares: int


@dataclass(frozen=True)
class StakeDelegatedLocked(ChainEvent):
    event_type = EventType.STAKE_DELEGATED_LOCKED
    amount_fields = ("tokens", "shares", "until")

    delegator: str
    tokens: int
    shares: int
    until: int


@dataclass(frozen=True)
class StakeDelegatedWithdrawn(ChainEvent):
    event_type = EventType.STAKE_DELEGATED_WITHDRAWN
    amount_fields = ("tokens",)

    delegator: str
    tokens: int


@dataclass(frozen=True)
class DelegationParametersUpdated(ChainEvent):
    event_type = EventType.DELEGATION_PARAMETERS_UPDATED
    amount_fields = ("indexing_reward_cut", "query_fee_cut", "cooldown_blocks")

    indexing_reward_cut: int
    query_fee_cut: int
    cooldown_blocks: int


# -- Allocations and rewards --------------------------------------------------


@dataclass(frozen=True)
class AllocationCreated(ChainEvent):
    event_type = EventType.ALLOCATION_CREATED
    amount_fields = ("tokens", "epoch")

    allocation_id: str
    subgraph_deployment_id: str
    epoch: int
    tokens: int


@dataclass(frozen=True)
class AllocationCollected(ChainEvent):
    event_type = EventType.ALLOCATION_COLLECTED
    amount_fields = ("tokens", "epoch", "rebate_fees")

    allocation_id: str
    epoch: int
    tokens: int
    rebate_fees: int


@dataclass(frozen=True)
class AllocationClosed(ChainEvent):
    event_type = EventType.ALLOCATION_CLOSED
    amount_fields = ("tokens", "epoch")

    allocation_id: str
    epoch: int
    tokens: int


@dataclass(frozen=True)
class RewardsAssigned(ChainEvent):
    event_type = EventType.REWARDS_ASSIGNED
    amount_fields = ("amount", "epoch")

    allocation_id: str
    epoch: int
    amount: int


@dataclass(frozen=True)
class RebateClaimed(ChainEvent):
    event_type = EventType.REBATE_CLAIMED
    amount_fields = ("tokens", "delegation_fees")

    allocation_id: str
    tokens: int
    delegation_fees: int


EVENT_CLASSES: dict[EventType, type[ChainEvent]] = {
    cls.event_type: cls
    for cls in (
        StakeDeposited,
        StakeLocked,
        StakeWithdrawn,
        StakeSlashed,
        StakeDelegated,
        StakeDelegatedLocked,
        StakeDelegatedWithdrawn,
        DelegationParametersUpdated,
        AllocationCreated,
        AllocationCollected,
        AllocationClosed,
        RewardsAssigned,
        RebateClaimed,
    )
}


def parse_event(data: dict[str, object]) -> ChainEvent:
    """Build a typed event from a JSON object carrying a ``type`` key."""
    raw_type: object = data.get("type")
    if not isinstance(raw_type, str):
        raise InvalidEventError("Event has no 'type'")
    try:
        event_type: EventType = EventType(raw_type)
    except ValueError as exc:
        raise InvalidEventError(f"Unknown event type '{raw_type}'") from exc
    return EVENT_CLASSES[event_type].from_dict(data)
