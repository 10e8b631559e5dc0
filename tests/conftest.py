"""
Shared pytest fixtures for the TaskHub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_tenant / make_user / auth_headers: entity factories
"""

import pytest

import taskhub as _taskhub_module
from taskhub import create_app
from taskhub.models import db as _db
from taskhub.models.auth import Tenant, TenantStatus, User, UserRole
from taskhub.services.health_tracker import InMemoryWarningStore
from taskhub.services.jwt_service import generate_access_token

# Constraint migration rebuilds SQLite tables (DROP + rename); with foreign
# keys enforced the DROP would cascade into child tables.
_taskhub_module._SQLITE_FK_ENFORCEMENT = False


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        store = app.extensions["tenancy_health"].store
        if isinstance(store, InMemoryWarningStore):
            store.clear()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_tenant():
    def _make(slug, status=TenantStatus.ACTIVE, name=None):
        tenant = Tenant(name=name or slug.title(), slug=slug, status=status)
        _db.session.add(tenant)
        _db.session.flush()
        return tenant
    return _make


@pytest.fixture()
def make_user():
    def _make(email, role=UserRole.EMPLOYEE, tenant=None):
        user = User(email=email, name=email.split("@")[0], role=role,
                    tenant_id=tenant.id if tenant else None)
        _db.session.add(user)
        _db.session.flush()
        return user
    return _make


@pytest.fixture()
def auth_headers():
    def _headers(user, **extra):
        headers = {"Authorization": f"Bearer {generate_access_token(user.id)}"}
        headers.update(extra)
        return headers
    return _headers


@pytest.fixture()
def super_user(make_user):
    return make_user("root@taskhub.test", role=UserRole.SUPER_USER)
