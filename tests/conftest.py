import os

# Must be set before adscale.config is first imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("SLACK_WEBHOOK_URL", "")

import pytest
from sqlalchemy.orm import sessionmaker

from adscale.models.base import build_engine, init_db


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
