"""
Shared fixtures for graphmeta tests.

Most tests run against ``MemoryGraphStore`` so they need no server.
"""

import pytest

from config import get_settings, settings as settings_module
from graph import ConstraintType, MemoryGraphStore


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Fresh settings per test with exports going to a temporary directory."""
    monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "exports"))
    monkeypatch.setenv("ENABLE_PARALLEL", "false")
    get_settings(reload=True)
    yield
    # the next get_settings() call rebuilds from the restored environment
    settings_module._settings = None


@pytest.fixture
def store():
    return MemoryGraphStore()


@pytest.fixture
def people_store():
    """
    Small social graph.

    Structure:
        (Alice:Person)-[:KNOWS {since: 2016}]->(Bob:Person)
        (Alice)-[:LIVES_IN]->(Berlin:City)
        (Bob)-[:LIVES_IN]->(Berlin)
    """
    store = MemoryGraphStore()
    alice = store.create_node("Person", name="Alice", age=42)
    bob = store.create_node("Person", name="Bob", age=37)
    berlin = store.create_node("City", name="Berlin")
    store.create_relationship(alice, "KNOWS", bob, since=2016)
    store.create_relationship(alice, "LIVES_IN", berlin)
    store.create_relationship(bob, "LIVES_IN", berlin)
    return store


@pytest.fixture
def constrained_store():
    """Two Person nodes under a uniqueness constraint on name, plus one unconstrained Pet."""
    store = MemoryGraphStore()
    store.create_constraint("Person", ["name"], ConstraintType.UNIQUENESS, name="person_name")
    alice = store.create_node("Person", name="Alice")
    bob = store.create_node("Person", name="Bob")
    rex = store.create_node("Pet", name="Rex")
    store.create_relationship(alice, "KNOWS", bob)
    store.create_relationship(alice, "OWNS", rex)
    return store


@pytest.fixture
def lives_in_store():
    """100 Person nodes each living in one of 5 cities."""
    store = MemoryGraphStore()
    cities = [store.create_node("City", name=f"City {i}") for i in range(5)]
    for i in range(100):
        person = store.create_node("Person", name=f"Person {i}")
        store.create_relationship(person, "LIVES_IN", cities[i % 5])
    return store
