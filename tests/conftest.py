"""
Strata Test Configuration and Fixtures
"""
import logging

import pytest
from faker import Faker

from strata import Application, ConfigPresets
from strata.events import EventEmitter

from fixtures.http import asgi_recorder, client, http_client, make_context  # noqa: F401


@pytest.fixture
def faker():
    """Faker instance for generating test data."""
    return Faker()


@pytest.fixture
def config():
    """Test application configuration."""
    return ConfigPresets.testing()


@pytest.fixture
def error_sink():
    """Error sink injected into the test application."""
    return EventEmitter()


@pytest.fixture
def errors(error_sink):
    """Errors reported to the application error sink, as (err, ctx) pairs."""
    reported = []
    error_sink.on('error', lambda err, ctx: reported.append((err, ctx)))
    return reported


@pytest.fixture
def app(config, error_sink) -> Application:
    """Test application instance."""
    return Application(config, error_sink=error_sink)


@pytest.fixture
def loud_app(config):
    """Application that logs errors through the default error listener."""
    config.silent = False
    return Application(config)


@pytest.fixture(autouse=True)
def quiet_logging(caplog):
    """Capture framework logs at DEBUG for assertions."""
    caplog.set_level(logging.DEBUG, logger="strata")
    yield


# Custom markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
