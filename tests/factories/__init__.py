"""Test data factories for the grading and progression engine.

This module provides builders for catalogue rows and an in-memory unit of
work that the service tests run against.
"""

from tests.factories.catalogue_factory import CatalogueFactory
from tests.factories.unit_of_work_fake import FakeUnitOfWork, InMemoryStore

__all__ = [
    "CatalogueFactory",
    "FakeUnitOfWork",
    "InMemoryStore",
]
