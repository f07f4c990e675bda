"""
Shared fixtures for tabulation tests
"""
import pytest

from tabulation.config import Settings
from tabulation.models import ParticipantType
from tabulation.store import InMemoryStore
from tabulation.tests.factories import build_models, seed_event


@pytest.fixture
def settings() -> Settings:
    """Settings with a short debounce window."""
    return Settings(autosave_delay_ms=20, score_change_audit=True)


@pytest.fixture
def store() -> InMemoryStore:
    return seed_event(InMemoryStore())


@pytest.fixture
def divided_store() -> InMemoryStore:
    return seed_event(InMemoryStore(), ParticipantType.INDIVIDUAL.value)


@pytest.fixture
def models():
    return build_models()


@pytest.fixture
def divided_models():
    return build_models(ParticipantType.INDIVIDUAL.value)
