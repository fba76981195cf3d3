"""Event processor: applies decoded staking events to indexer ledgers in order."""

from collections.abc import Callable, Iterable
from dataclasses import fields, replace

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import LedgerSettings, get_settings
from db.enums import EventType, RunStatus
from db.models import ProcessingRuns
from stakeledger.services._helpers import dump_json, new_id, normalize_address, now_iso
from stakeledger.services.decimals import FEE_CUT_PRECISION
from stakeledger.services.delegated_stake import DelegatedStake
from stakeledger.services.errors import (
    EventProcessingError,
    InvalidEventError,
    UnsupportedEventError,
)
from stakeledger.services.indexer import Indexer
from stakeledger.services.schemas.events import (
    ChainEvent,
    DelegationParametersUpdated,
    StakeDelegated,
)
from stakeledger.services.schemas.results import ProcessingResult

logger = structlog.get_logger(__name__)

Handler = Callable[[Indexer, ChainEvent], object]

HANDLERS: dict[EventType, Handler] = {
    EventType.STAKE_DEPOSITED: Indexer.handle_stake_deposited,
    EventType.STAKE_LOCKED: Indexer.handle_stake_locked,
    EventType.STAKE_WITHDRAWN: Indexer.handle_stake_withdrawn,
    EventType.STAKE_SLASHED: Indexer.handle_stake_slashed,
    EventType.STAKE_DELEGATED: Indexer.handle_stake_delegated,
    EventType.STAKE_DELEGATED_LOCKED: Indexer.handle_stake_delegated_locked,
    EventType.STAKE_DELEGATED_WITHDRAWN: Indexer.handle_stake_delegated_withdrawn,
    EventType.ALLOCATION_CREATED: Indexer.handle_allocation_created,
    EventType.ALLOCATION_COLLECTED: Indexer.handle_allocation_collected,
    EventType.ALLOCATION_CLOSED: Indexer.handle_allocation_closed,
    EventType.REWARDS_ASSIGNED: Indexer.handle_rewards_assigned,
    EventType.REBATE_CLAIMED: Indexer.handle_rebate_claimed,
    EventType.DELEGATION_PARAMETERS_UPDATED: Indexer.handle_delegation_parameters_updated,
}  # type: ignore[dict-item]


def validate_event(event: ChainEvent) -> None:
    """Reject values the staking contract can never emit."""
    for f in fields(event):
        if f.name in event.amount_fields and getattr(event, f.name) < 0:
            raise InvalidEventError(
                f"{event.event_type.value}: '{f.name}' must be non-negative"
            )
    if event.block.number < 0 or event.block.timestamp < 0:
        raise InvalidEventError(f"{event.event_type.value}: invalid block reference")
    if isinstance(event, DelegationParametersUpdated):
        for cut in (event.indexing_reward_cut, event.query_fee_cut):
            if cut > FEE_CUT_PRECISION:
                raise InvalidEventError(
                    f"{event.event_type.value}: fee cut {cut} exceeds {FEE_CUT_PRECISION}"
                )


class EventProcessor:
    """Dispatches each event to exactly one indexer handler, atomically."""

    def __init__(self, session: Session, settings: LedgerSettings | None = None) -> None:
        self.session: Session = session
        self.settings: LedgerSettings = settings or get_settings().ledger

    # ------------------------------------------------------------------
    # Single event
    # ------------------------------------------------------------------

    def process(self, event: ChainEvent) -> object:
        """Apply one event. Its writes land together or not at all."""
        if self.settings.validate_events:
            validate_event(event)
        handler: Handler | None = HANDLERS.get(event.event_type)
        if handler is None:
            raise UnsupportedEventError(f"No handler for {event.event_type.value}")

        with self.session.begin_nested():
            indexer: Indexer = Indexer(self.session, event.indexer, event.block)
            if isinstance(event, StakeDelegated):
                delegated_stake: DelegatedStake = DelegatedStake(
                    self.session, indexer.id, event.delegator, event.block
                )
                if delegated_stake.is_created_this_block:
                    logger.debug("New delegation pair", delegated_stake_id=delegated_stake.id)
            outcome: object = handler(indexer, event)
        return outcome

    # ------------------------------------------------------------------
    # Event streams
    # ------------------------------------------------------------------

    def _create_run(self, source: str | None) -> ProcessingRuns:
        run: ProcessingRuns = ProcessingRuns(
            run_id=new_id(),
            source=source,
            started_at=now_iso(),
            status=RunStatus.RUNNING.value,
        )
        self.session.add(run)
        self.session.flush()
        return run

    def process_events(
        self, events: Iterable[ChainEvent], source: str | None = None
    ) -> ProcessingResult:
        """Apply events in order under a run record.

        With ``fail_fast`` the first rejected event discards every write since
        the last commit, the run is committed as failed, and the error is
        re-raised.
        """
        run: ProcessingRuns = self._create_run(source)
        result: ProcessingResult = ProcessingResult(
            run_id=run.run_id, events_processed=0, events_skipped=0
        )
        logger.info("Starting event replay", run_id=run.run_id, source=source)
        committed: ProcessingResult = _copy_result(result)

        for event in events:
            try:
                self.process(event)
            except SQLAlchemyError:
                logger.exception("Persistence failure", block=event.block.number)
                raise
            except EventProcessingError as e:
                result.events_skipped += 1
                result.errors.append(f"Block {event.block.number}: {e}")
                logger.warning(
                    "Event rejected",
                    event_type=event.event_type.value,
                    block=event.block.number,
                    reason=str(e),
                )
                if self.settings.fail_fast:
                    self._abort_run(run, committed, result.errors[-1])
                    raise
                continue

            result.events_processed += 1
            result.indexers_touched.add(normalize_address(event.indexer))
            if result.first_block is None:
                result.first_block = event.block.number
            result.last_block = event.block.number

            every: int = self.settings.commit_every
            if every and result.events_processed % every == 0:
                self._checkpoint(run, result)
                committed = _copy_result(result)

        status: RunStatus = RunStatus.PARTIAL if result.errors else RunStatus.SUCCESS
        self._finish_run(run, result, status)
        logger.info(
            "Event replay complete",
            run_id=run.run_id,
            events_processed=result.events_processed,
            events_skipped=result.events_skipped,
            indexers=len(result.indexers_touched),
        )
        return result

    def _checkpoint(self, run: ProcessingRuns, result: ProcessingResult) -> None:
        self._update_run(run, result)
        self.session.commit()
        logger.debug("Checkpoint committed", run_id=run.run_id, events=result.events_processed)

    def _update_run(self, run: ProcessingRuns, result: ProcessingResult) -> None:
        run.events_processed = result.events_processed
        run.events_skipped = result.events_skipped
        run.first_block = result.first_block
        run.last_block = result.last_block
        if result.errors:
            run.error_details = dump_json({"errors": result.errors[:100]})

    def _finish_run(
        self, run: ProcessingRuns, result: ProcessingResult, status: RunStatus
    ) -> None:
        self._update_run(run, result)
        run.status = status.value
        run.completed_at = now_iso()
        self.session.flush()

    def _abort_run(self, run: ProcessingRuns, committed: ProcessingResult, error: str) -> None:
        """Discard writes since the last commit and persist the run as failed."""
        run_id, source, started_at = run.run_id, run.source, run.started_at
        self.session.rollback()
        failed: ProcessingRuns = self.session.merge(
            ProcessingRuns(run_id=run_id, source=source, started_at=started_at)
        )
        committed.events_skipped += 1
        committed.errors.append(error)
        self._finish_run(failed, committed, RunStatus.FAILED)
        self.session.commit()
        logger.error(
            "Event replay aborted",
            run_id=run_id,
            events_committed=committed.events_processed,
            reason=error,
        )


def _copy_result(result: ProcessingResult) -> ProcessingResult:
    return replace(
        result, indexers_touched=set(result.indexers_touched), errors=list(result.errors)
    )
