"""Per-period snapshot ledger for an indexer.

Each indexer owns one ``IndexerSnapshots`` row per calendar month (UTC). The
row for the month of the block being processed is looked up or created on
first use; rows of earlier months are only ever read.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models import Indexers, IndexerSnapshots
from stakeledger.services._helpers import period_end, period_start, previous_period_start
from stakeledger.services.decimals import ZERO, exact
from stakeledger.services.schemas.events import BlockRef
from stakeledger.services.store import EntityStore

logger = structlog.get_logger(__name__)


def snapshot_id(indexer_id: str, start: date) -> str:
    return f"{indexer_id}-{start:%Y-%m}"


class IndexerSnapshot:
    """Open snapshot of one indexer for the period containing ``block``."""

    def __init__(self, session: Session, indexer: Indexers, block: BlockRef) -> None:
        self.session: Session = session
        self.store: EntityStore = EntityStore(session)
        self.indexer: Indexers = indexer
        self.block: BlockRef = block
        self.period_start: date = period_start(block.timestamp)
        self.entity: IndexerSnapshots = self._load_or_create()

    def _load_or_create(self) -> IndexerSnapshots:
        entity: IndexerSnapshots | None = self.store.load(IndexerSnapshots, self.id)
        if entity is None:
            entity = IndexerSnapshots(
                id=self.id,
                indexer_id=self.indexer.id,
                period_start=self.period_start,
                period_end=period_end(self.period_start),
                own_stake_delta=ZERO,
                delegated_stake_delta=ZERO,
                delegation_pool_indexing_rewards=ZERO,
                parameter_changes_count=0,
                created_at_timestamp=self.block.timestamp,
                created_at_block=self.block.number,
                updated_at_block=self.block.number,
            )
            logger.debug("Opened snapshot", snapshot_id=self.id, block=self.block.number)
        return entity

    @property
    def id(self) -> str:
        return snapshot_id(self.indexer.id, self.period_start)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    @exact
    def record_own_stake_delta(self, delta: Decimal) -> None:
        self.entity.own_stake_delta = self.entity.own_stake_delta + delta
        self._save()

    @exact
    def record_delegated_stake_delta(self, delta: Decimal) -> None:
        self.entity.delegated_stake_delta = self.entity.delegated_stake_delta + delta
        self._save()

    @exact
    def record_pool_reward(self, amount: Decimal) -> None:
        self.entity.delegation_pool_indexing_rewards = (
            self.entity.delegation_pool_indexing_rewards + amount
        )
        self._save()

    def increment_parameter_change_count(self) -> None:
        self.entity.parameter_changes_count = self.entity.parameter_changes_count + 1
        self._save()

    def _save(self) -> None:
        self.entity.updated_at_block = self.block.number
        self.store.save(self.entity)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def previous_period_reward(self) -> Decimal:
        """Delegation pool rewards recorded in the month before this one."""
        previous: IndexerSnapshots | None = self.store.load(
            IndexerSnapshots, snapshot_id(self.indexer.id, previous_period_start(self.period_start))
        )
        if previous is None:
            return ZERO
        return previous.delegation_pool_indexing_rewards


def list_snapshots(session: Session, indexer_id: str) -> Sequence[IndexerSnapshots]:
    stmt: Select[tuple[IndexerSnapshots]] = (
        select(IndexerSnapshots)
        .where(IndexerSnapshots.indexer_id == indexer_id)
        .order_by(IndexerSnapshots.period_start)
    )
    return session.scalars(stmt).all()
