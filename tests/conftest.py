"""
Pytest configuration and shared fixtures.

Provides mocks, fixtures, and helpers for testing without hardware.
"""

import queue

import pytest
import pyvisa

from peaktune.drivers import InstrumentConfig, InstrumentSession
from peaktune.sweep import SweepEngine
from peaktune.worker import MessageType

# Import fixtures from our fixtures module
from tests.fixtures.fake_instrument import FakeInstrumentServer
from tests.fixtures.mock_visa import MockResourceManager, MockVisaResource

# ===== Configuration Fixtures =====


@pytest.fixture
def instrument_config():
    """Create an instrument configuration with short timings for testing."""
    return InstrumentConfig(
        host="192.168.1.50",
        read_timeout_sec=0.2,
        connect_timeout_sec=1.0,
        settle_delay_sec=0.0,
        poll_interval_sec=0.05,
    )


# ===== VISA Mock Fixtures =====


@pytest.fixture
def mock_resource_manager(monkeypatch):
    """
    Mock pyvisa ResourceManager globally.

    This ensures no real VISA drivers are used and every opened resource is
    the manager's MockVisaResource.
    """
    mock_rm = MockResourceManager(MockVisaResource())

    def mock_resource_manager_factory(backend=None):
        return mock_rm

    monkeypatch.setattr(pyvisa, "ResourceManager", mock_resource_manager_factory)
    return mock_rm


@pytest.fixture
def mock_analyzer(mock_resource_manager):
    """The simulated analyzer behind the mocked resource manager."""
    return mock_resource_manager.resource


# ===== Session Fixtures =====


@pytest.fixture
def session(instrument_config, mock_resource_manager):
    """Create a disconnected session on the mock analyzer."""
    return InstrumentSession(instrument_config)


@pytest.fixture
def connected_session(session):
    """Create and connect a session on the mock analyzer."""
    session.connect()
    yield session
    session.disconnect()


@pytest.fixture
def engine(connected_session):
    """Sweep engine without settle delay on a connected session."""
    return SweepEngine(connected_session, settle_delay_sec=0.0)


# ===== Loopback Instrument =====


@pytest.fixture
def fake_instrument():
    """Start a loopback TCP instrument on an ephemeral port."""
    server = FakeInstrumentServer()
    server.start()
    yield server
    server.stop()


# ===== Worker Test Helpers =====


def consume_worker_messages_until(
    worker, target_type: MessageType, timeout: float = 2.0, max_messages: int = 200
):
    """
    Consume worker messages until target type is found.

    Helper for worker tests that need to skip log and progress messages
    before getting the response they care about.

    Args:
        worker: InstrumentWorker instance
        target_type: MessageType to wait for
        timeout: Timeout per message in seconds
        max_messages: Maximum messages to consume

    Returns:
        Message of target_type, or None if not found

    Example:
        msg = consume_worker_messages_until(worker, MessageType.CONNECTED)
        assert msg is not None
        assert msg.type == MessageType.CONNECTED
    """
    for _ in range(max_messages):
        try:
            msg = worker.get_response(timeout=timeout)
        except queue.Empty:
            return None
        if msg.type == target_type:
            return msg
        if msg.type == MessageType.ERROR and target_type != MessageType.ERROR:
            # Return error immediately
            return msg
    return None


def collect_worker_messages_until(
    worker, target_type: MessageType, timeout: float = 2.0, max_messages: int = 500
) -> list:
    """
    Collect every worker message up to and including the target type.

    Returns:
        Messages in arrival order (the last one is the target if it arrived)
    """
    messages = []
    for _ in range(max_messages):
        try:
            msg = worker.get_response(timeout=timeout)
        except queue.Empty:
            break
        messages.append(msg)
        if msg.type == target_type:
            break
    return messages


# Make helpers available to tests
pytest.consume_worker_messages_until = consume_worker_messages_until
pytest.collect_worker_messages_until = collect_worker_messages_until
