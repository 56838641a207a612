"""Shared fixtures: an isolated LMDB store per test."""

import pytest

from folio import Folio


@pytest.fixture
def store(tmp_path):
    """Create and return a store in a temporary directory."""
    db = Folio(str(tmp_path / "store"))
    yield db
    db.close()


@pytest.fixture
def work(store):
    """A work seeded with the default structure."""
    return store.create_work("The Long Winter", "A test novel")


@pytest.fixture
def titled(store):
    """Look up a node of a work by title."""
    def lookup(work_id, title):
        for node in store.list_nodes(work_id):
            if node.title == title:
                return node
        raise AssertionError(f"No node titled {title!r} in work {work_id}")
    return lookup
