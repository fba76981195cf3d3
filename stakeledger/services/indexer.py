"""Indexer accounting engine.

Holds an indexer's own stake, pooled delegated stake, pool share count,
allocated stake and delegation parameters, and applies staking events to
them. Derived ratios are materialized on the row by the mutator that
changes their inputs, never written anywhere else.
"""

from decimal import Decimal

import structlog
from sqlalchemy.orm import Session

from db.models import Indexers
from stakeledger.services._helpers import normalize_address
from stakeledger.services.decimals import (
    SIXTEEN,
    ZERO,
    exact,
    fee_cut_to_ratio,
    safe_div,
    token_amount_to_decimal,
)
from stakeledger.services.parameter_update import IndexerParameterUpdateLog
from stakeledger.services.schemas.events import (
    AllocationClosed,
    AllocationCollected,
    AllocationCreated,
    BlockRef,
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
)
from stakeledger.services.schemas.results import RewardSplit
from stakeledger.services.snapshot import IndexerSnapshot
from stakeledger.services.store import EntityStore

logger = structlog.get_logger(__name__)


class Indexer:
    """Aggregate root for one indexer address."""

    def __init__(self, session: Session, address: str, block: BlockRef) -> None:
        self.session: Session = session
        self.store: EntityStore = EntityStore(session)
        self.block: BlockRef = block
        self.entity: Indexers = self._load_or_initialize(normalize_address(address))
        self._snapshot: IndexerSnapshot | None = None

    def _load_or_initialize(self, indexer_id: str) -> Indexers:
        entity: Indexers | None = self.store.load(Indexers, indexer_id)
        if entity is None:
            # One phantom share keeps the first delegation's share price defined.
            entity = Indexers(
                id=indexer_id,
                created_at_timestamp=self.block.timestamp,
                created_at_block=self.block.number,
                own_stake=ZERO,
                delegated_stake=ZERO,
                allocated_stake=ZERO,
                delegation_pool_shares=1,
                maximum_delegation=ZERO,
                is_over_delegated=False,
                allocation_ratio=ZERO,
                delegation_ratio=ZERO,
                monthly_delegator_reward_rate=ZERO,
                indexing_reward_cut_ratio=ZERO,
                query_fee_cut_ratio=ZERO,
                delegator_parameter_cooldown_block=None,
            )
        return entity

    # ------------------------------------------------------------------
    # Primary state
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def own_stake(self) -> Decimal:
        return self.entity.own_stake

    @property
    def delegated_stake(self) -> Decimal:
        return self.entity.delegated_stake

    @property
    def delegation_pool_shares(self) -> int:
        return self.entity.delegation_pool_shares

    @property
    def allocated_stake(self) -> Decimal:
        return self.entity.allocated_stake

    @property
    def indexing_reward_cut_ratio(self) -> Decimal:
        return self.entity.indexing_reward_cut_ratio

    @property
    def query_fee_cut_ratio(self) -> Decimal:
        return self.entity.query_fee_cut_ratio

    @property
    def delegator_parameter_cooldown_block(self) -> int | None:
        return self.entity.delegator_parameter_cooldown_block

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    @exact
    def maximum_delegation(self) -> Decimal:
        return self.own_stake * SIXTEEN

    @property
    def is_over_delegated(self) -> bool:
        return self.delegated_stake > self.maximum_delegation

    @property
    @exact
    def allocation_ratio(self) -> Decimal:
        # Usable delegation is capped at the ceiling when over-delegated.
        if self.is_over_delegated:
            capacity: Decimal = self.own_stake + self.maximum_delegation
        else:
            capacity = self.own_stake + self.delegated_stake
        return safe_div(self.allocated_stake, capacity)

    @property
    def delegation_ratio(self) -> Decimal:
        """Delegated stake over the ceiling. Exceeds 1 when over-delegated."""
        if self.own_stake == ZERO:
            return ZERO
        return safe_div(self.delegated_stake, self.maximum_delegation)

    @property
    def delegation_share_price(self) -> Decimal:
        return safe_div(self.delegated_stake, self.delegation_pool_shares)

    @property
    def snapshot(self) -> IndexerSnapshot:
        if self._snapshot is None:
            self._snapshot = IndexerSnapshot(self.session, self.entity, self.block)
        return self._snapshot

    @property
    def monthly_delegator_reward_rate(self) -> Decimal:
        """Last month's pool rewards over the current pool.

        A trailing yield estimate, not an APY: the numerator is historical and
        the denominator is today's delegated stake.
        """
        if self.delegated_stake == ZERO:
            return ZERO
        return safe_div(self.snapshot.previous_period_reward(), self.delegated_stake)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    @exact
    def update_own_stake(self, own_stake_delta: Decimal) -> None:
        self.store.add(self.entity)
        self.snapshot.record_own_stake_delta(own_stake_delta)
        self.entity.last_snapshot_id = self.snapshot.id

        self.entity.own_stake = self.own_stake + own_stake_delta
        self.entity.maximum_delegation = self.maximum_delegation
        self.entity.is_over_delegated = self.is_over_delegated
        self.entity.allocation_ratio = self.allocation_ratio
        self.entity.delegation_ratio = self.delegation_ratio
        self.store.save(self.entity)
        logger.debug(
            "Own stake updated",
            indexer=self.id,
            delta=str(own_stake_delta),
            own_stake=str(self.own_stake),
        )

    @exact
    def update_delegated_stake(
        self, delegated_stake_delta: Decimal, delegation_pool_shares_delta: int
    ) -> None:
        """Move pooled stake and shares; the two need not be proportional.

        Compounding rewards arrive with a zero share delta, raising the price
        of every outstanding share.
        """
        self.store.add(self.entity)
        self.snapshot.record_delegated_stake_delta(delegated_stake_delta)
        self.entity.last_snapshot_id = self.snapshot.id

        self.entity.delegated_stake = self.delegated_stake + delegated_stake_delta
        self.entity.delegation_pool_shares = (
            self.delegation_pool_shares + delegation_pool_shares_delta
        )
        self.entity.is_over_delegated = self.is_over_delegated
        self.entity.allocation_ratio = self.allocation_ratio
        self.entity.delegation_ratio = self.delegation_ratio
        self.entity.monthly_delegator_reward_rate = self.monthly_delegator_reward_rate
        self.store.save(self.entity)
        logger.debug(
            "Delegated stake updated",
            indexer=self.id,
            delta=str(delegated_stake_delta),
            shares_delta=delegation_pool_shares_delta,
            delegated_stake=str(self.delegated_stake),
        )

    @exact
    def update_allocated_stake(self, allocated_stake_delta: Decimal) -> None:
        self.entity.allocated_stake = self.allocated_stake + allocated_stake_delta
        self.entity.allocation_ratio = self.allocation_ratio
        self.store.save(self.entity)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def handle_stake_deposited(self, event: StakeDeposited) -> None:
        self.update_own_stake(token_amount_to_decimal(event.tokens))

    @exact
    def handle_stake_locked(self, event: StakeLocked) -> None:
        self.update_own_stake(-token_amount_to_decimal(event.tokens))

    def handle_stake_withdrawn(self, event: StakeWithdrawn) -> None:
        """Nothing to do: the stake left the ledger when it was locked."""

    @exact
    def handle_stake_slashed(self, event: StakeSlashed) -> None:
        self.update_own_stake(-token_amount_to_decimal(event.tokens))

    def handle_stake_delegated(self, event: StakeDelegated) -> None:
        # Minted shares come from the contract's own share-price calculation.
        self.update_delegated_stake(token_amount_to_decimal(event.tokens), event.shares)

    @exact
    def handle_stake_delegated_locked(self, event: StakeDelegatedLocked) -> None:
        self.update_delegated_stake(-token_amount_to_decimal(event.tokens), -event.shares)

    def handle_stake_delegated_withdrawn(self, event: StakeDelegatedWithdrawn) -> None:
        """Nothing to do: the delegation left the pool when it was locked."""

    def handle_allocation_created(self, event: AllocationCreated) -> None:
        self.update_allocated_stake(token_amount_to_decimal(event.tokens))

    def handle_allocation_collected(self, event: AllocationCollected) -> None:
        """Nothing to do: collected fees reach the pool through RebateClaimed."""

    @exact
    def handle_allocation_closed(self, event: AllocationClosed) -> None:
        self.update_allocated_stake(-token_amount_to_decimal(event.tokens))

    def handle_rewards_assigned(self, event: RewardsAssigned) -> RewardSplit:
        """Split indexing rewards by the indexer's cut.

        The delegators' part compounds into the pool without minting shares.
        The indexer's part is not restaked here.
        """
        split: RewardSplit = self.split_rewards(token_amount_to_decimal(event.amount))
        if self.delegated_stake == ZERO:
            return split

        self.snapshot.record_pool_reward(split.delegator_rewards)
        self.update_delegated_stake(split.delegator_rewards, 0)
        return split

    @exact
    def split_rewards(self, rewards: Decimal) -> RewardSplit:
        if self.delegated_stake == ZERO:
            return RewardSplit(indexer_rewards=rewards, delegator_rewards=ZERO)
        indexer_rewards: Decimal = rewards * self.indexing_reward_cut_ratio
        return RewardSplit(
            indexer_rewards=indexer_rewards,
            delegator_rewards=rewards - indexer_rewards,
        )

    def handle_rebate_claimed(self, event: RebateClaimed) -> None:
        # The indexer's own part surfaces as a StakeDeposited when restaked.
        delegation_fees: Decimal = token_amount_to_decimal(event.delegation_fees)
        self.update_delegated_stake(delegation_fees, 0)
        self.snapshot.record_pool_reward(delegation_fees)

    def handle_delegation_parameters_updated(self, event: DelegationParametersUpdated) -> None:
        indexing_reward_cut_ratio: Decimal = fee_cut_to_ratio(event.indexing_reward_cut)
        query_fee_cut_ratio: Decimal = fee_cut_to_ratio(event.query_fee_cut)

        self.store.add(self.entity)
        self.entity.indexing_reward_cut_ratio = indexing_reward_cut_ratio
        self.entity.query_fee_cut_ratio = query_fee_cut_ratio
        IndexerParameterUpdateLog(self.session, self.id, self.block).register_update(
            indexing_reward_cut_ratio, query_fee_cut_ratio, event.cooldown_blocks
        )
        self.snapshot.increment_parameter_change_count()
        self.entity.last_snapshot_id = self.snapshot.id

        if event.cooldown_blocks == 0:
            self.entity.delegator_parameter_cooldown_block = None
        else:
            self.entity.delegator_parameter_cooldown_block = (
                self.block.number + event.cooldown_blocks
            )
        self.store.save(self.entity)
