"""Result dataclasses returned by service operations."""

from dataclasses import dataclass, field
from decimal import Decimal

from stakeledger.services.decimals import exact


@dataclass(frozen=True)
class RewardSplit:
    indexer_rewards: Decimal
    delegator_rewards: Decimal

    @property
    @exact
    def total(self) -> Decimal:
        return self.indexer_rewards + self.delegator_rewards


@dataclass
class ProcessingResult:
    run_id: str
    events_processed: int
    events_skipped: int
    indexers_touched: set[str] = field(default_factory=set)
    first_block: int | None = None
    last_block: int | None = None
    errors: list[str] = field(default_factory=list)
