"""Tests for stakeledger.services.indexer."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from db.models import Indexers, IndexerSnapshots
from stakeledger.services.decimals import LEDGER_CONTEXT, ZERO
from stakeledger.services.indexer import Indexer
from stakeledger.services.parameter_update import parameter_history
from stakeledger.services.schemas import (
    AllocationClosed,
    AllocationCreated,
    BlockRef,
    DelegationParametersUpdated,
    RebateClaimed,
    RewardsAssigned,
    StakeDelegated,
    StakeDelegatedLocked,
    StakeDeposited,
    StakeLocked,
    StakeSlashed,
    StakeWithdrawn,
)

INDEXER: str = "0x00000000000000000000000000000000000000aa"
DELEGATOR: str = "0x00000000000000000000000000000000000000bb"

# 2026-01-15T00:00:00Z / 2026-02-10T00:00:00Z
JAN: BlockRef = BlockRef(number=1000, timestamp=1768435200)
FEB: BlockRef = BlockRef(number=2000, timestamp=1770681600)


def tokens(amount: int) -> int:
    return amount * 10**18


def indexer_at(session: Session, block: BlockRef = JAN) -> Indexer:
    return Indexer(session, INDEXER, block)


def deposit(session: Session, amount: int, block: BlockRef = JAN) -> Indexer:
    indexer: Indexer = indexer_at(session, block)
    indexer.handle_stake_deposited(
        StakeDeposited(block=block, indexer=INDEXER, tokens=tokens(amount))
    )
    return indexer


def delegate(session: Session, amount: int, shares: int, block: BlockRef = JAN) -> Indexer:
    indexer: Indexer = indexer_at(session, block)
    indexer.handle_stake_delegated(
        StakeDelegated(
            block=block, indexer=INDEXER, delegator=DELEGATOR, tokens=tokens(amount), shares=shares
        )
    )
    return indexer


def set_cut(
    session: Session, indexing_cut: int, block: BlockRef = JAN, cooldown: int = 0
) -> Indexer:
    indexer: Indexer = indexer_at(session, block)
    indexer.handle_delegation_parameters_updated(
        DelegationParametersUpdated(
            block=block,
            indexer=INDEXER,
            indexing_reward_cut=indexing_cut,
            query_fee_cut=0,
            cooldown_blocks=cooldown,
        )
    )
    return indexer


def assign_rewards(session: Session, amount: int, block: BlockRef = JAN):
    indexer: Indexer = indexer_at(session, block)
    split = indexer.handle_rewards_assigned(
        RewardsAssigned(
            block=block, indexer=INDEXER, allocation_id="0xa11", epoch=1, amount=tokens(amount)
        )
    )
    return indexer, split


@pytest.fixture()
def pooled(session: Session) -> Indexer:
    """Own stake 100, pool of 400 tokens over 400 shares, 20% indexing cut."""
    deposit(session, 100)
    indexer_at(session).update_delegated_stake(Decimal(400), 399)
    return set_cut(session, 200_000)


class TestNewIndexer:
    def test_defaults(self, session: Session) -> None:
        indexer: Indexer = indexer_at(session)
        assert indexer.id == INDEXER
        assert indexer.own_stake == ZERO
        assert indexer.delegated_stake == ZERO
        assert indexer.allocated_stake == ZERO
        assert indexer.delegation_pool_shares == 1
        assert indexer.indexing_reward_cut_ratio == ZERO
        assert indexer.query_fee_cut_ratio == ZERO
        assert indexer.delegator_parameter_cooldown_block is None

    def test_construction_alone_persists_nothing(self, session: Session) -> None:
        indexer_at(session)
        indexer_at(session)
        session.flush()
        assert session.get(Indexers, INDEXER) is None

    def test_address_normalized(self, session: Session) -> None:
        indexer: Indexer = Indexer(session, "0x" + INDEXER[2:].upper(), JAN)
        assert indexer.id == INDEXER

    def test_created_at_from_first_block(self, session: Session) -> None:
        deposit(session, 1)
        later: Indexer = deposit(session, 1, FEB)
        assert later.entity.created_at_block == JAN.number
        assert later.entity.created_at_timestamp == JAN.timestamp

    def test_derived_values_with_zero_denominators(self, session: Session) -> None:
        indexer: Indexer = indexer_at(session)
        assert indexer.maximum_delegation == ZERO
        assert not indexer.is_over_delegated
        assert indexer.allocation_ratio == ZERO
        assert indexer.delegation_ratio == ZERO
        assert indexer.delegation_share_price == ZERO
        assert indexer.monthly_delegator_reward_rate == ZERO


class TestOwnStake:
    def test_deposit_lock_slash(self, session: Session) -> None:
        deposit(session, 100)
        indexer: Indexer = indexer_at(session)
        indexer.handle_stake_locked(
            StakeLocked(block=JAN, indexer=INDEXER, tokens=tokens(30), until=5000)
        )
        indexer.handle_stake_slashed(
            StakeSlashed(
                block=JAN, indexer=INDEXER, tokens=tokens(10), reward=tokens(5), beneficiary="0xcc"
            )
        )
        assert indexer.own_stake == Decimal(60)
        assert indexer.maximum_delegation == Decimal(960)
        assert indexer.entity.maximum_delegation == Decimal(960)

        snap: IndexerSnapshots | None = session.get(IndexerSnapshots, f"{INDEXER}-2026-01")
        assert snap is not None
        assert snap.own_stake_delta == Decimal(60)
        assert indexer.entity.last_snapshot_id == snap.id

    def test_withdrawn_is_a_no_op(self, session: Session) -> None:
        deposit(session, 100)
        indexer: Indexer = indexer_at(session)
        indexer.handle_stake_withdrawn(
            StakeWithdrawn(block=JAN, indexer=INDEXER, tokens=tokens(50))
        )
        assert indexer.own_stake == Decimal(100)

    def test_fractional_tokens_exact(self, session: Session) -> None:
        indexer: Indexer = indexer_at(session)
        indexer.handle_stake_deposited(StakeDeposited(block=JAN, indexer=INDEXER, tokens=1))
        assert indexer.own_stake == Decimal("1E-18")


class TestDelegation:
    def test_delegation_updates_pool(self, pooled: Indexer, session: Session) -> None:
        indexer: Indexer = delegate(session, 120, 100)
        assert indexer.delegated_stake == Decimal(520)
        assert indexer.delegation_pool_shares == 500

    def test_delegated_locked_burns_shares(self, pooled: Indexer, session: Session) -> None:
        indexer: Indexer = indexer_at(session)
        indexer.handle_stake_delegated_locked(
            StakeDelegatedLocked(
                block=JAN,
                indexer=INDEXER,
                delegator=DELEGATOR,
                tokens=tokens(100),
                shares=100,
                until=9000,
            )
        )
        assert indexer.delegated_stake == Decimal(300)
        assert indexer.delegation_pool_shares == 300
        assert indexer.delegation_share_price == Decimal(1)

    def test_over_delegation_caps_capacity(self, session: Session) -> None:
        deposit(session, 10)
        delegate(session, 200, 200)
        indexer: Indexer = indexer_at(session)
        indexer.handle_allocation_created(
            AllocationCreated(
                block=JAN,
                indexer=INDEXER,
                allocation_id="0xa11",
                subgraph_deployment_id="0xd3",
                epoch=1,
                tokens=tokens(85),
            )
        )
        assert indexer.maximum_delegation == Decimal(160)
        assert indexer.is_over_delegated
        assert indexer.entity.is_over_delegated
        # Capacity is 10 + 160, not 10 + 200.
        assert indexer.allocation_ratio == Decimal("0.5")
        assert indexer.entity.allocation_ratio == Decimal("0.5")
        assert indexer.delegation_ratio == Decimal("1.25")

    def test_delegation_without_own_stake(self, session: Session) -> None:
        indexer: Indexer = delegate(session, 50, 50)
        assert indexer.is_over_delegated
        assert indexer.delegation_ratio == ZERO
        assert indexer.allocation_ratio == ZERO


class TestAllocations:
    def test_create_and_close(self, session: Session) -> None:
        deposit(session, 100)
        indexer: Indexer = indexer_at(session)
        indexer.handle_allocation_created(
            AllocationCreated(
                block=JAN,
                indexer=INDEXER,
                allocation_id="0xa11",
                subgraph_deployment_id="0xd3",
                epoch=1,
                tokens=tokens(40),
            )
        )
        assert indexer.allocated_stake == Decimal(40)
        assert indexer.allocation_ratio == Decimal("0.4")

        indexer.handle_allocation_closed(
            AllocationClosed(
                block=JAN, indexer=INDEXER, allocation_id="0xa11", epoch=2, tokens=tokens(40)
            )
        )
        assert indexer.allocated_stake == ZERO
        assert indexer.entity.allocation_ratio == ZERO


class TestRewards:
    def test_no_delegation_all_to_indexer(self, session: Session) -> None:
        deposit(session, 100)
        indexer, split = assign_rewards(session, 50)
        assert split.indexer_rewards == Decimal(50)
        assert split.delegator_rewards == ZERO
        assert indexer.delegated_stake == ZERO
        assert indexer.delegation_pool_shares == 1
        snap = session.get(IndexerSnapshots, f"{INDEXER}-2026-01")
        assert snap is not None
        assert snap.delegation_pool_indexing_rewards == ZERO

    def test_unknown_indexer_not_persisted(self, session: Session) -> None:
        _, split = assign_rewards(session, 50)
        session.flush()
        assert split.indexer_rewards == Decimal(50)
        assert session.get(Indexers, INDEXER) is None

    def test_split_by_indexing_cut(self, pooled: Indexer, session: Session) -> None:
        indexer, split = assign_rewards(session, 100)
        assert split.indexer_rewards == Decimal(20)
        assert split.delegator_rewards == Decimal(80)
        assert split.total == Decimal(100)
        assert indexer.delegated_stake == Decimal(480)
        assert indexer.delegation_pool_shares == 400
        assert indexer.delegation_share_price == Decimal("1.2")

        snap = session.get(IndexerSnapshots, f"{INDEXER}-2026-01")
        assert snap is not None
        assert snap.delegation_pool_indexing_rewards == Decimal(80)
        assert snap.delegated_stake_delta == Decimal(480)

    def test_delegation_at_share_price(self, pooled: Indexer, session: Session) -> None:
        assign_rewards(session, 100)
        indexer: Indexer = delegate(session, 120, 100)
        assert indexer.delegated_stake == Decimal(600)
        assert indexer.delegation_pool_shares == 500
        assert indexer.delegation_share_price == Decimal("1.2")
        assert indexer.maximum_delegation == Decimal(1600)
        assert indexer.delegation_ratio == Decimal("0.375")

    def test_rewards_raise_share_price(self, pooled: Indexer, session: Session) -> None:
        before: Decimal = indexer_at(session).delegation_share_price
        assign_rewards(session, 10)
        after: Decimal = indexer_at(session).delegation_share_price
        assert after > before

    def test_full_cut_leaves_pool_unchanged(self, pooled: Indexer, session: Session) -> None:
        set_cut(session, 1_000_000)
        indexer, split = assign_rewards(session, 100)
        assert split.indexer_rewards == Decimal(100)
        assert split.delegator_rewards == ZERO
        assert indexer.delegated_stake == Decimal(400)

    def test_rebate_claimed_compounds_fees(self, pooled: Indexer, session: Session) -> None:
        indexer: Indexer = indexer_at(session)
        indexer.handle_rebate_claimed(
            RebateClaimed(
                block=JAN,
                indexer=INDEXER,
                allocation_id="0xa11",
                tokens=tokens(30),
                delegation_fees=tokens(8),
            )
        )
        assert indexer.delegated_stake == Decimal(408)
        assert indexer.delegation_pool_shares == 400
        snap = session.get(IndexerSnapshots, f"{INDEXER}-2026-01")
        assert snap is not None
        assert snap.delegation_pool_indexing_rewards == Decimal(8)


class TestMonthlyRewardRate:
    def test_uses_previous_month(self, pooled: Indexer, session: Session) -> None:
        assign_rewards(session, 100)
        assert indexer_at(session).entity.monthly_delegator_reward_rate == ZERO

        indexer: Indexer = delegate(session, 120, 100, FEB)
        expected: Decimal = LEDGER_CONTEXT.divide(Decimal(80), Decimal(600))
        assert indexer.entity.monthly_delegator_reward_rate == expected
        assert indexer.monthly_delegator_reward_rate == expected


class TestDelegationParameters:
    def test_ratios_and_log(self, session: Session) -> None:
        indexer: Indexer = indexer_at(session)
        indexer.handle_delegation_parameters_updated(
            DelegationParametersUpdated(
                block=JAN,
                indexer=INDEXER,
                indexing_reward_cut=200_000,
                query_fee_cut=150_000,
                cooldown_blocks=0,
            )
        )
        assert indexer.indexing_reward_cut_ratio == Decimal("0.2")
        assert indexer.query_fee_cut_ratio == Decimal("0.15")
        assert indexer.delegator_parameter_cooldown_block is None

        history = parameter_history(session, INDEXER)
        assert len(history) == 1
        assert history[0].block_number == JAN.number

        snap = session.get(IndexerSnapshots, f"{INDEXER}-2026-01")
        assert snap is not None
        assert snap.parameter_changes_count == 1

    def test_cooldown_block(self, session: Session) -> None:
        indexer: Indexer = set_cut(session, 100_000, cooldown=50)
        assert indexer.delegator_parameter_cooldown_block == JAN.number + 50

        cleared: Indexer = set_cut(session, 100_000, BlockRef(1100, JAN.timestamp + 60))
        assert cleared.delegator_parameter_cooldown_block is None

    def test_query_fee_cut_does_not_affect_split(self, pooled: Indexer, session: Session) -> None:
        indexer: Indexer = indexer_at(session)
        indexer.handle_delegation_parameters_updated(
            DelegationParametersUpdated(
                block=JAN,
                indexer=INDEXER,
                indexing_reward_cut=200_000,
                query_fee_cut=900_000,
                cooldown_blocks=0,
            )
        )
        _, split = assign_rewards(session, 100)
        assert split.delegator_rewards == Decimal(80)

    def test_each_update_counted(self, session: Session) -> None:
        set_cut(session, 100_000)
        set_cut(session, 200_000, BlockRef(1001, JAN.timestamp + 12))
        set_cut(session, 300_000, FEB)
        jan = session.get(IndexerSnapshots, f"{INDEXER}-2026-01")
        feb = session.get(IndexerSnapshots, f"{INDEXER}-2026-02")
        assert jan is not None and feb is not None
        assert jan.parameter_changes_count == 2
        assert feb.parameter_changes_count == 1
        assert len(parameter_history(session, INDEXER)) == 3
