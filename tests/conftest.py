"""Pytest configuration and shared fixtures for pmpnat tests."""

from __future__ import annotations

import logging

import pytest

from pmpnat.config.config import reset_config


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("asyncio", "marks tests as async (deselect with '-m \"not asyncio\"')"),
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("nat", "marks tests as NAT traversal tests"),
        ("config", "marks tests as configuration tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _clear_pmpnat_env(monkeypatch):
    """Keep ``PMPNAT_*`` variables from the developer's shell out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("PMPNAT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def cleanup_config():
    """Drop the global configuration manager after each test."""
    yield
    reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        if logger_name == "pmpnat":
            logger.propagate = True
            logger.setLevel(logging.NOTSET)
