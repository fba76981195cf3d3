"""Shared fixtures — in-memory SQLite DB with all tables."""

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import LedgerSettings
from db.connection import enable_sqlite_savepoints
from db.models import Base
from stakeledger.services.schemas import BlockRef


# 2026-01-15T00:00:00Z
JAN_15: int = 1768435200
# 2026-02-10T00:00:00Z
FEB_10: int = 1770681600


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng: Engine = create_engine("sqlite:///:memory:", echo=False)
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def block() -> BlockRef:
    return BlockRef(number=1000, timestamp=JAN_15)


@pytest.fixture()
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(validate_events=True, fail_fast=True, commit_every=0)
