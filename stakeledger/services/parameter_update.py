"""Append-only audit log of indexer delegation-parameter changes."""

from collections.abc import Sequence
from decimal import Decimal

import structlog
from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models import IndexerParameterUpdates
from stakeledger.services._helpers import new_id
from stakeledger.services.schemas.events import BlockRef
from stakeledger.services.store import EntityStore

logger = structlog.get_logger(__name__)


class IndexerParameterUpdateLog:
    """Writes one immutable record per parameter-change event."""

    def __init__(self, session: Session, indexer_id: str, block: BlockRef) -> None:
        self.session: Session = session
        self.store: EntityStore = EntityStore(session)
        self.indexer_id: str = indexer_id
        self.block: BlockRef = block

    def register_update(
        self,
        indexing_reward_cut_ratio: Decimal,
        query_fee_cut_ratio: Decimal,
        cooldown_blocks: int = 0,
    ) -> IndexerParameterUpdates:
        entry: IndexerParameterUpdates = IndexerParameterUpdates(
            id=new_id(),
            indexer_id=self.indexer_id,
            block_number=self.block.number,
            timestamp=self.block.timestamp,
            indexing_reward_cut_ratio=indexing_reward_cut_ratio,
            query_fee_cut_ratio=query_fee_cut_ratio,
            cooldown_blocks=cooldown_blocks,
        )
        self.store.save(entry)
        logger.info(
            "Delegation parameters recorded",
            indexer=self.indexer_id,
            block=self.block.number,
            indexing_reward_cut=str(indexing_reward_cut_ratio),
            query_fee_cut=str(query_fee_cut_ratio),
        )
        return entry


def parameter_history(
    session: Session, indexer_id: str, limit: int | None = None
) -> Sequence[IndexerParameterUpdates]:
    stmt: Select[tuple[IndexerParameterUpdates]] = (
        select(IndexerParameterUpdates)
        .where(IndexerParameterUpdates.indexer_id == indexer_id)
        .order_by(IndexerParameterUpdates.block_number, IndexerParameterUpdates.recorded_at)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()
