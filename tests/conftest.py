"""Pytest configuration for all tests."""

import os

import pytest


@pytest.fixture
def clean_env(monkeypatch):
    """Remove BROKERAGE_ variables so settings tests see only their own."""
    for key in list(os.environ):
        if key.startswith("BROKERAGE_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def sample_config_env(clean_env):
    """Set a complete BROKERAGE_ environment."""
    clean_env.setenv("BROKERAGE_DATABASE_URL", "postgresql://brokerage:secret@db:5432/brokerage")
    clean_env.setenv("BROKERAGE_DEFAULT_ACTOR_NAME", "Front Desk")
    clean_env.setenv("BROKERAGE_ACTION_WEBHOOK_URL", "https://hooks.example.com/actions")
    clean_env.setenv("BROKERAGE_ACTION_TIMEOUT_SECONDS", "5")
    clean_env.setenv("BROKERAGE_ACTION_MAX_RETRIES", "1")
    clean_env.setenv("BROKERAGE_BULK_MOVE_CONCURRENCY", "4")
    clean_env.setenv("BROKERAGE_ENABLE_METRICS", "false")
    clean_env.setenv("BROKERAGE_PORT", "9090")
    return clean_env
