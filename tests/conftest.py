"""
Shared fixtures: in-memory SQLite session with the chat schema, two users, one assessment.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Assessment, User
from app.services.conversation_manager import ConversationManager


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    u = User(id="user-1", email="mia@example.com", username="mia")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = User(id="user-2", email="sam@example.com", username="sam")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def assessment(db, user):
    a = Assessment(
        id="asmt-1",
        user_id=user.id,
        pattern="regular",
        age="13-17",
        cycle_length="26-30",
        period_duration="4-5",
        flow_heaviness="moderate",
        pain_level="mild",
        physical_symptoms=["bloating"],
        emotional_symptoms=[],
    )
    db.add(a)
    db.commit()
    return a


@pytest.fixture
def manager():
    return ConversationManager()


@pytest.fixture
def conversation(db, user, assessment, manager):
    """Conversation anchored to the user's assessment (has snapshot and pattern)."""
    conversation_id = manager.create_conversation(db, user.id, assessment.id)
    return manager._repo.get_conversation(db, conversation_id)


@pytest.fixture
def bare_conversation(db, user, manager):
    """Conversation created without an assessment."""
    conversation_id = manager.create_conversation(db, user.id)
    return manager._repo.get_conversation(db, conversation_id)
