"""
Pytest Configuration

Adds ``src`` to ``sys.path`` so the suite runs from a plain checkout and
provides shared fixtures for building unified search services on top of the
in-memory collaborators.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from IdentityBench.UnifiedSearch.devtools import (  # noqa: E402
    InMemoryCustomerIndex,
    InMemoryDetailStore,
    sample_customers,
)
from IdentityBench.UnifiedSearch.service import UnifiedSearchService  # noqa: E402


@pytest.fixture
def customers():
    return sample_customers()


@pytest.fixture
def customer_index(customers):
    return InMemoryCustomerIndex(customers)


@pytest.fixture
def detail_store(customers):
    return InMemoryDetailStore(customers)


@pytest.fixture
def service(customer_index, detail_store):
    svc = UnifiedSearchService(search_collaborator=customer_index, detail_store=detail_store)
    yield svc
    svc.close()


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo handler and propagation changes made by ``setup_logging`` calls."""
    logger = logging.getLogger("IdentityBench.UnifiedSearch")
    handlers = list(logger.handlers)
    level, propagate = logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate
