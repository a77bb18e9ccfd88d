import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rank_tracker.models import Base


@pytest.fixture
def session_factory(tmp_path):
    db_path = tmp_path / "rank_tracker.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
