"""
Tests for CollectionRegistry

Tests cover lazy creation, partition isolation and resets.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.registry import CollectionRegistry
from data.resource_store import ResourceStore


@pytest.fixture
def registry():
    factory = MagicMock(side_effect=lambda key: AsyncMock(name=f"loader-{key}"))
    return CollectionRegistry("author", ResourceStore("posts"), factory)


# =============================================================================
# Creation Tests
# =============================================================================

class TestGetOrCreate:
    """Tests for lazy collection creation."""

    def test_creates_empty_collection(self, registry):
        """A new partition starts empty, loadable and idle."""
        collection = registry.get_or_create('u1')
        assert collection.ordered_ids == []
        assert collection.has_more is True
        assert collection.is_loading is False
        assert collection.partition_key == 'u1'
        assert collection.label == 'author[u1]'

    def test_returns_same_collection_for_same_key(self, registry):
        """The loader factory runs once per partition."""
        first = registry.get_or_create('u1')
        second = registry.get_or_create('u1')
        assert first is second
        registry._loader_factory.assert_called_once_with('u1')

    def test_partitions_are_independent(self, registry):
        """Different keys give different collections."""
        a = registry.get_or_create('u1')
        b = registry.get_or_create('u2')
        a.prepend_id('p1')
        assert 'p1' not in b
        assert set(registry.partitions()) == {'u1', 'u2'}

    def test_get_does_not_create(self, registry):
        assert registry.get('u1') is None
        assert 'u1' not in registry


# =============================================================================
# Reset Tests
# =============================================================================

class TestReset:
    """Tests for reset and reset_all."""

    def test_reset_discards_partition(self, registry):
        """After reset the next access builds a fresh collection."""
        old = registry.get_or_create('u1')
        old.prepend_id('p1')

        assert registry.reset('u1') is True
        fresh = registry.get_or_create('u1')

        assert fresh is not old
        assert fresh.ordered_ids == []

    def test_reset_unknown_partition(self, registry):
        assert registry.reset('nobody') is False

    def test_reset_all(self, registry):
        registry.get_or_create('u1')
        registry.get_or_create('u2')
        registry.reset_all()
        assert len(registry) == 0

    def test_referenced_ids(self, registry):
        """referenced_ids unions every partition's ids."""
        registry.get_or_create('u1').prepend_id('p1')
        registry.get_or_create('u2').prepend_id('p2')
        assert registry.referenced_ids() == {'p1', 'p2'}
