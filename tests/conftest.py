"""
Shared fixtures for the Fee Portal tests.
"""

from typing import List

import pytest

from feeportal.core.entities import Student
from feeportal.main import FeePortal
from feeportal.persistence import InMemoryStore
from feeportal.services import InMemorySyncChannel


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def channel() -> InMemorySyncChannel:
    return InMemorySyncChannel()


@pytest.fixture
def make_portal(store, channel):
    """Open contexts sharing one store and one channel; all closed on teardown."""
    opened: List[FeePortal] = []

    def _make(context_id: str = "tab-a", seed=None, payment_delay: float = 0.0) -> FeePortal:
        portal = FeePortal(
            {'context_id': context_id, 'payment_delay': payment_delay},
            store=store,
            channel=channel,
            seed=seed,
        )
        opened.append(portal.open())
        return portal

    yield _make

    for portal in opened:
        portal.close()


@pytest.fixture
def zoe() -> Student:
    return Student(id="z-1", name="Zoe", email="zoe@x.edu", password="pw")
