"""
Root test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test (foreign keys enforced)
- Tenant and connected-store fixtures with an encrypted access token
- Fast sync settings (no backoff sleeps)
- FakeShopifyClient
"""

import os
import uuid
from typing import Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before importing app modules
os.environ["ENV"] = "test"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-for-shopify-insights"
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-for-tenant-context-000")

from shopinsights.config.sync_settings import SyncSettings, reset_sync_settings
from shopinsights.db_base import Base
from shopinsights.models.store import ShopifyStore, StoreStatus
from shopinsights.platform.secrets import SecretsManager, reset_secrets_manager

from mocks import TEST_ACCESS_TOKEN, FakeShopifyClient


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    import shopinsights.models  # noqa: F401 - register all tables

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Environment Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def _isolated_settings():
    """Drop cached settings and derived keys between tests."""
    reset_sync_settings()
    reset_secrets_manager()
    yield
    reset_sync_settings()
    reset_secrets_manager()


@pytest.fixture
def sync_settings() -> SyncSettings:
    return SyncSettings(
        resources=("orders",),
        page_size=250,
        max_page_retries=2,
        retry_base_delay_seconds=0,
        retry_max_delay_seconds=0,
    )


# =============================================================================
# Identity Fixtures
# =============================================================================

@pytest.fixture
def tenant_id() -> str:
    return f"org_{uuid.uuid4().hex[:12]}"


@pytest.fixture
def other_tenant_id() -> str:
    return f"org_{uuid.uuid4().hex[:12]}"


def encrypt_for_test(plaintext: str) -> str:
    """Encrypt with the same derived key the application uses."""
    return SecretsManager()._get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def create_store(
    session: Session,
    tenant_id: str,
    shop_domain: str = "test-store.myshopify.com",
    status: str = StoreStatus.CONNECTED,
    access_token: str = TEST_ACCESS_TOKEN,
) -> ShopifyStore:
    """Persist a store with an encrypted access token."""
    store = ShopifyStore(
        tenant_id=tenant_id,
        shop_domain=shop_domain,
        shop_name="Test Store",
        currency="USD",
        status=status,
        access_token_encrypted=encrypt_for_test(access_token) if access_token else None,
    )
    session.add(store)
    session.commit()
    session.refresh(store)
    return store


@pytest.fixture
def store(db_session, tenant_id) -> ShopifyStore:
    return create_store(db_session, tenant_id)


@pytest.fixture
def make_store(db_session):
    """Factory for additional stores: make_store(tenant_id, shop_domain=..., status=...)."""
    def _make(tenant_id: str, **kwargs) -> ShopifyStore:
        return create_store(db_session, tenant_id, **kwargs)
    return _make


@pytest.fixture
def fake_client() -> FakeShopifyClient:
    return FakeShopifyClient()
