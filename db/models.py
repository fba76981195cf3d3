"""SQLAlchemy ORM models for the indexer stake ledger."""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import ForeignKey, MetaData, String, UniqueConstraint
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class DecimalText(TypeDecorator[Decimal]):
    """Exact decimal stored as text; Numeric on SQLite goes through float."""

    impl = String(96)
    cache_ok = True

    def process_bind_param(self, value: Decimal | int | None, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value: str | None, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class IntegerText(TypeDecorator[int]):
    """Unbounded integer (uint256 share counts) stored as text."""

    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value: int | None, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value: str | None, dialect: Dialect) -> int | None:
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)

    def to_dict(self) -> dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


def utc_now() -> datetime:
    return datetime.now(UTC)


class Indexers(Base):
    __tablename__ = "indexers"

    id: Mapped[str] = mapped_column(String(42), primary_key=True)
    created_at_timestamp: Mapped[int] = mapped_column(nullable=False)
    created_at_block: Mapped[int] = mapped_column(nullable=False)

    own_stake: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal(0))
    delegated_stake: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal(0))
    allocated_stake: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal(0))
    delegation_pool_shares: Mapped[int] = mapped_column(IntegerText, nullable=False, default=1)

    maximum_delegation: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal(0)
    )
    is_over_delegated: Mapped[bool] = mapped_column(nullable=False, default=False)
    allocation_ratio: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal(0))
    delegation_ratio: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal(0))
    monthly_delegator_reward_rate: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal(0)
    )

    indexing_reward_cut_ratio: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal(0)
    )
    query_fee_cut_ratio: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal(0)
    )
    delegator_parameter_cooldown_block: Mapped[int | None] = mapped_column()

    last_snapshot_id: Mapped[str | None] = mapped_column(String(64))


class IndexerSnapshots(Base):
    __tablename__ = "indexer_snapshots"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    indexer_id: Mapped[str] = mapped_column(ForeignKey("indexers.id"), nullable=False)
    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False)

    own_stake_delta: Mapped[Decimal] = mapped_column(DecimalText, nullable=False, default=Decimal(0))
    delegated_stake_delta: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal(0)
    )
    delegation_pool_indexing_rewards: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal(0)
    )
    parameter_changes_count: Mapped[int] = mapped_column(nullable=False, default=0)

    created_at_timestamp: Mapped[int] = mapped_column(nullable=False)
    created_at_block: Mapped[int] = mapped_column(nullable=False)
    updated_at_block: Mapped[int] = mapped_column(nullable=False)

    __table_args__ = (UniqueConstraint("indexer_id", "period_start"),)


class IndexerParameterUpdates(Base):
    __tablename__ = "indexer_parameter_updates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    indexer_id: Mapped[str] = mapped_column(ForeignKey("indexers.id"), nullable=False)
    block_number: Mapped[int] = mapped_column(nullable=False)
    timestamp: Mapped[int] = mapped_column(nullable=False)
    indexing_reward_cut_ratio: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    query_fee_cut_ratio: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    cooldown_blocks: Mapped[int] = mapped_column(nullable=False, default=0)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)


class DelegatedStakes(Base):
    __tablename__ = "delegated_stakes"

    id: Mapped[str] = mapped_column(String(96), primary_key=True)
    indexer_id: Mapped[str] = mapped_column(String(42), nullable=False)
    delegator_id: Mapped[str] = mapped_column(String(42), nullable=False)
    created_at_timestamp: Mapped[int] = mapped_column(nullable=False)
    created_at_block: Mapped[int] = mapped_column(nullable=False)


class ProcessingRuns(Base):
    __tablename__ = "processing_runs"

    run_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source: Mapped[str | None] = mapped_column()
    started_at: Mapped[str] = mapped_column(nullable=False)
    completed_at: Mapped[str | None] = mapped_column()
    status: Mapped[str] = mapped_column(nullable=False, default="running")
    first_block: Mapped[int | None] = mapped_column()
    last_block: Mapped[int | None] = mapped_column()
    events_processed: Mapped[int] = mapped_column(nullable=False, default=0)
    events_skipped: Mapped[int] = mapped_column(nullable=False, default=0)
    error_details: Mapped[str | None] = mapped_column()
