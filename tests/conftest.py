"""
Pytest configuration and shared fixtures for ENTITY_ENGINE tests.

This module provides:
- Entity service fixtures backed by the in-memory adapter
- Mock adapter fixtures
- Broker and validator fixtures
- Test data factories
"""

from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from entity_engine.adapters.base import Adapter
from entity_engine.adapters.memory import MemoryAdapter
from entity_engine.config import ServiceSettings
from entity_engine.core.service import EntityService
from entity_engine.core.types import Context
from entity_engine.events import LocalBroker
from entity_engine.observability.metrics import get_metrics_collector
from entity_engine.validation import JsonSchemaValidator

# ============================================================================
# METRICS
# ============================================================================


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty metrics collector."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


# ============================================================================
# ADAPTER FIXTURES
# ============================================================================


@pytest.fixture
def memory_adapter() -> MemoryAdapter:
    """Create an unconnected in-memory adapter."""
    return MemoryAdapter()


@pytest.fixture
def mock_adapter() -> MagicMock:
    """Create a mock adapter with every capability stubbed out."""
    adapter = MagicMock(spec=Adapter)
    adapter.connect = AsyncMock()
    adapter.disconnect = AsyncMock()
    adapter.find = AsyncMock(return_value=[])
    adapter.find_one = AsyncMock(return_value=None)
    adapter.count = AsyncMock(return_value=0)
    adapter.insert = AsyncMock(side_effect=lambda entity: {"_id": 1, **entity})
    adapter.insert_many = AsyncMock(
        side_effect=lambda entities: [{"_id": i + 1, **e} for i, e in enumerate(entities)]
    )
    adapter.update_by_id = AsyncMock(return_value={"_id": 1})
    adapter.replace_by_id = AsyncMock(return_value={"_id": 1})
    adapter.remove_by_id = AsyncMock(side_effect=lambda id: id)
    adapter.clear = AsyncMock(return_value=0)
    adapter.create_index = AsyncMock(return_value="test_index")
    adapter.to_public_id = MagicMock(side_effect=lambda id: id)
    return adapter


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def service_settings() -> Dict[str, Any]:
    """Default settings for service tests."""
    return {
        "adapter": "Memory",
        "auto_reconnect": False,
        "default_page_size": 10,
        "max_limit": 50,
    }


@pytest.fixture
def service(service_settings: Dict[str, Any]) -> EntityService:
    """Create an EntityService backed by a MemoryAdapter."""
    return EntityService(ServiceSettings(**service_settings))


@pytest.fixture
def mock_service(mock_adapter: MagicMock) -> EntityService:
    """Create an EntityService whose adapter is ``mock_adapter``."""
    return EntityService({"adapter": mock_adapter, "auto_reconnect": False})


@pytest.fixture
def broker() -> LocalBroker:
    """Create an in-process broker."""
    return LocalBroker()


@pytest.fixture
def ctx() -> Context:
    """Create a call context without tenant or broker."""
    return Context(meta={"user_id": "user_1"})


# ============================================================================
# VALIDATION FIXTURES
# ============================================================================


@pytest.fixture
def post_schema() -> Dict[str, Any]:
    """JSON schema for blog posts."""
    return {
        "type": "object",
        "properties": {
            "title": {"type": "string", "minLength": 1},
            "votes": {"type": "integer", "minimum": 0},
            "status": {"type": "string", "enum": ["active", "draft"]},
            "author": {
                "type": "object",
                "properties": {"name": {"type": "string"}},
            },
        },
        "required": ["title"],
    }


@pytest.fixture
def post_validator(post_schema: Dict[str, Any]) -> JsonSchemaValidator:
    """Validator for blog posts with soft-delete support."""
    return JsonSchemaValidator(post_schema, soft_delete_field="deleted_at")


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================


@pytest.fixture
def sample_posts() -> List[Dict[str, Any]]:
    """Sample post payloads."""
    return [
        {"title": "First", "votes": 3, "status": "active"},
        {"title": "Second", "votes": 7, "status": "draft"},
        {"title": "Third", "votes": 1, "status": "active"},
    ]
