"""Shared fixtures for inventory command tests."""

import pytest
from inventory.store.management import OpenStore
from protean import current_domain


@pytest.fixture()
def stores():
    """Three active stores keyed by letter; codes sort a < b < c."""
    return {
        letter: current_domain.process(
            OpenStore(name=f"Store {letter.upper()}", code=f"{letter.upper()}01", city="Bogotá"),
            asynchronous=False,
        )
        for letter in ("a", "b", "c")
    }
