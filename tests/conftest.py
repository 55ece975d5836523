"""Shared test fixtures and helpers."""

from __future__ import annotations

from typing import Any

import pytest

from herald.channels.adapters.memory import MockChannelAdapter
from herald.channels.registry import AdapterRegistry
from herald.notifications.context import ContextRegistry
from herald.notifications.engine import NotificationEngine
from herald.notifications.renderer import JinjaTemplateRenderer
from herald.notifications.store import NotificationStore


def user_spec(**overrides: Any) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "user_id": "user-1",
        "notification_type": "EMAIL",
        "title": "Welcome",
        "body_template": "Hello {{ name }}!",
        "subject_template": "Hi {{ name }}",
        "context_name": "greeting",
        "context_parameters": {"name": "Ada"},
    }
    spec.update(overrides)
    return spec


def one_off_spec(**overrides: Any) -> dict[str, Any]:
    spec = user_spec(
        user_id=None,
        email_or_phone="prospect@example.com",
        first_name="Jane",
        last_name="Doe",
    )
    spec.update(overrides)
    return spec


def greeting(params: dict[str, Any]) -> dict[str, Any]:
    return {"name": params["name"]}


@pytest.fixture
def make_user_spec():
    return user_spec


@pytest.fixture
def make_one_off_spec():
    return one_off_spec


@pytest.fixture
def store() -> NotificationStore:
    return NotificationStore()


@pytest.fixture
def adapter() -> MockChannelAdapter:
    return MockChannelAdapter()


@pytest.fixture
def contexts() -> ContextRegistry:
    return ContextRegistry({"greeting": greeting})


@pytest.fixture
def engine(store, adapter, contexts) -> NotificationEngine:
    """Engine over the in-memory store with send-on-create disabled."""
    return NotificationEngine(
        backend=store,
        adapters=AdapterRegistry([adapter]),
        contexts=contexts,
        renderer=JinjaTemplateRenderer(),
        send_on_create=False,
    )
