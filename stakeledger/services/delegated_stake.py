"""Identity record for an (indexer, delegator) pair."""

import structlog
from sqlalchemy.orm import Session

from db.models import DelegatedStakes
from stakeledger.services._helpers import normalize_address
from stakeledger.services.schemas.events import BlockRef
from stakeledger.services.store import EntityStore

logger = structlog.get_logger(__name__)


def delegated_stake_id(indexer_id: str, delegator_id: str) -> str:
    return f"{indexer_id}-{delegator_id}"


class DelegatedStake:
    """First-write-wins record keyed by ``{indexer}-{delegator}``."""

    def __init__(self, session: Session, indexer_id: str, delegator: str, block: BlockRef) -> None:
        self.store: EntityStore = EntityStore(session)
        self.indexer_id: str = indexer_id
        self.delegator_id: str = normalize_address(delegator)
        self.block: BlockRef = block
        self.entity: DelegatedStakes = self._load_or_create()

    @property
    def id(self) -> str:
        return delegated_stake_id(self.indexer_id, self.delegator_id)

    def _load_or_create(self) -> DelegatedStakes:
        entity: DelegatedStakes | None = self.store.load(DelegatedStakes, self.id)
        if entity is None:
            entity = DelegatedStakes(
                id=self.id,
                indexer_id=self.indexer_id,
                delegator_id=self.delegator_id,
                created_at_timestamp=self.block.timestamp,
                created_at_block=self.block.number,
            )
            self.store.save(entity)
            logger.debug("Created delegated stake", delegated_stake_id=self.id)
        return entity

    @property
    def is_created_this_block(self) -> bool:
        return self.entity.created_at_timestamp == self.block.timestamp
