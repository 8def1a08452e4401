"""Shared fixtures: settings, encryptor, event bus, in-memory repositories."""

from __future__ import annotations

import base64
import os

import pytest

from factories import make_context
from nutribot.config import AssessmentSettings, LLMSettings, PrivacySettings, SecuritySettings, Settings
from nutribot.events import EventBus
from nutribot.privacy.context import PrivacyContext
from nutribot.security.encryption import FieldEncryptor
from nutribot.storage.memory import build_memory_repositories
from nutribot.storage.ports import Repositories


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        llm=LLMSettings(primary_provider="local", secondary_provider="remote", timeout=1.0),
        privacy=PrivacySettings(anonymization_level="medium"),
        assessment=AssessmentSettings(total_questions=15, minutes_per_question=2),
        security=SecuritySettings(
            encryption_key=base64.b64encode(os.urandom(32)).decode("ascii"),
            auth_secret="test-auth-secret",
            consent_secret="test-consent-secret",
        ),
    )


@pytest.fixture
def encryptor() -> FieldEncryptor:
    return FieldEncryptor(os.urandom(32))


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def repos() -> Repositories:
    return build_memory_repositories()


@pytest.fixture
def context() -> PrivacyContext:
    return make_context()
