"""
pytest configuration and fixtures for Quoting System tests
"""

import pytest
import tempfile
import shutil
import sys
from pathlib import Path
from datetime import datetime

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from utils import config_manager

# 测试中关闭限流，必须在导入 api.app 之前设置
config_manager.set_nested('api_config.rate_limit_per_minute', 0)

from database.connection import DatabaseManager
from database.operations import DatabaseOperations
from pricing import QuoteNumberGenerator
from quote_manager import QuoteManager

from tests.factories import MaterialFactory, QuoteFactory


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_database(temp_dir):
    """File-backed SQLite database with all tables created"""
    manager = DatabaseManager(str(temp_dir / "quoting_test.db"))
    manager.initialize()
    manager.create_tables()

    yield manager

    # NullPool 下异步引擎不持有连接，只需释放同步引擎
    if manager.sync_engine is not None:
        manager.sync_engine.dispose()


@pytest.fixture
def db_ops(test_database):
    return DatabaseOperations(test_database)


@pytest.fixture
def fixed_now():
    return datetime(2025, 3, 15, 10, 30, 0)


@pytest.fixture
def number_generator(fixed_now):
    """Number generator pinned to March 2025"""
    return QuoteNumberGenerator(prefix="COT", clock=lambda: fixed_now)


@pytest.fixture
def quote_manager(db_ops, number_generator):
    return QuoteManager(db_ops, number_generator)


@pytest.fixture
def live_quote_manager(db_ops):
    """QuoteManager on the test database using the real clock"""
    return QuoteManager(db_ops, QuoteNumberGenerator(prefix="COT"))


@pytest.fixture
def api_client(live_quote_manager, monkeypatch):
    """TestClient routed to the test database"""
    from fastapi.testclient import TestClient
    from api import routes
    from api.app import app

    monkeypatch.setattr(routes, 'quote_manager', live_quote_manager)
    return TestClient(app)


@pytest.fixture
def material_factory():
    return MaterialFactory


@pytest.fixture
def quote_factory():
    return QuoteFactory


@pytest.fixture
async def cement(quote_manager):
    """Portland cement at 15.50/kg"""
    return await quote_manager.create_material({
        'name': 'Portland Cement', 'unit': 'kg', 'unit_price': 15.50,
        'description': 'Type I Portland cement', 'active': True
    })


# Pytest configuration
def pytest_configure(config):
    """Configure pytest"""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
