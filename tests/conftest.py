"""Shared fixtures."""

import pytest

from budget_planner.config import ElevenLabsSettings, GeminiSettings
from budget_planner.models.identity import UserIdentity
from budget_planner.services.storage import InMemoryPlanStorage


@pytest.fixture
def identity():
    return UserIdentity(user_id="user-1", email="ana@example.com", name="Ana")


@pytest.fixture
def other_identity():
    return UserIdentity(user_id="user-2", email="ben@example.com", name="Ben")


@pytest.fixture
def storage():
    return InMemoryPlanStorage()


@pytest.fixture
def gemini_settings():
    return GeminiSettings(api_key="test-key", max_words=150)


@pytest.fixture
def elevenlabs_settings():
    return ElevenLabsSettings(
        api_key="el-test-key",
        base_url="https://tts.test/v1/text-to-speech",
    )
