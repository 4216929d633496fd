"""
Pytest configuration and shared fixtures.

Database tests run against in-memory SQLite (one shared connection via
StaticPool). Upstream APIs are never called: DataForSEO, Google, n8n and
page fetches go through httpx.MockTransport, Claude through AsyncMock.
"""

import json
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rankpilot.auth.models import User, UserRole
from rankpilot.collector.client import DataForSEOClient
from rankpilot.database.models import Base, Keyword, Project
from rankpilot.database.repository import normalize_keyword
from rankpilot.database.session import enable_sqlite_foreign_keys


# =============================================================================
# DATAFORSEO PAYLOADS
# =============================================================================

def dataforseo_envelope(
    items: Optional[List[Dict[str, Any]]] = None,
    result: Optional[List[Dict[str, Any]]] = None,
    status_code: int = 20000,
    status_message: str = "Ok.",
    task_status_code: int = 20000,
) -> Dict[str, Any]:
    """
    A DataForSEO response body.

    `items` fills tasks[0].result[0].items (Labs, SERP, Backlinks);
    `result` replaces the result list (Google Ads endpoints).
    """
    if result is None:
        result = [{"items": items or []}]
    return {
        "status_code": status_code,
        "status_message": status_message,
        "cost": 0.01,
        "tasks": [{
            "id": "task-1",
            "status_code": task_status_code,
            "status_message": "Ok.",
            "result": result,
        }],
    }


def ranked_keyword_item(
    keyword: str,
    search_volume: int = 100,
    difficulty: Optional[int] = None,
    position: int = 5,
    competition_level: str = "LOW",
    cpc: float = 1.0,
) -> Dict[str, Any]:
    return {
        "keyword_data": {
            "keyword": keyword,
            "keyword_info": {
                "search_volume": search_volume,
                "competition_level": competition_level,
                "cpc": cpc,
            },
            "keyword_properties": {"keyword_difficulty": difficulty},
        },
        "ranked_serp_element": {
            "serp_item": {
                "rank_absolute": position,
                "url": f"https://competitor.com/{keyword.replace(' ', '-')}",
                "title": keyword.title(),
                "etv": 12.5,
            },
        },
    }


def serp_item(domain: str, rank: int, item_type: str = "organic", path: str = "") -> Dict[str, Any]:
    return {
        "type": item_type,
        "rank_group": rank,
        "rank_absolute": rank,
        "domain": domain,
        "url": f"https://{domain}/{path}",
        "title": f"{domain} result",
    }


class DataForSEOStub:
    """
    Routes DataForSEO endpoint paths to canned bodies.

    A route value may be a dict (returned as-is), an int (HTTP status with
    an empty body) or a callable taking the request payload and returning
    either of those.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.requests: List[Dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.split("/v3/", 1)[-1]
        payload = json.loads(request.content or b"[]")
        self.requests.append({"endpoint": endpoint, "payload": payload})

        route = self.routes.get(endpoint)
        if route is None:
            return httpx.Response(404, json={"status_code": 40400, "status_message": "Not Found."})
        if callable(route):
            route = route(payload)
        if isinstance(route, int):
            return httpx.Response(route)
        return httpx.Response(200, json=route)

    def endpoints(self) -> List[str]:
        return [request["endpoint"] for request in self.requests]

    def client(self) -> DataForSEOClient:
        return DataForSEOClient(
            login="test@example.com",
            password="secret",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def dataforseo() -> DataForSEOStub:
    """Empty stub; tests register routes then call .client()."""
    return DataForSEOStub()


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    SessionLocal = sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_user(db, email: str, role: UserRole = UserRole.USER) -> User:
    user = User(id=uuid4(), email=email, full_name=email.split("@")[0].title(), role=role, is_active=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def user(db_session) -> User:
    return make_user(db_session, "owner@example.com")


@pytest.fixture
def other_user(db_session) -> User:
    return make_user(db_session, "someone@example.com")


@pytest.fixture
def admin_user(db_session) -> User:
    return make_user(db_session, "admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def project(db_session, user) -> Project:
    project = Project(
        id=uuid4(),
        user_id=user.id,
        name="My Site",
        domain="mysite.com",
        target_location="United States",
        location_code=2840,
        language_code="en",
    )
    db_session.add(project)
    db_session.commit()
    return project


@pytest.fixture
def add_keyword(db_session) -> Callable[..., Keyword]:
    """Factory for tracked keywords."""
    def _add(project: Project, text: str, **metrics) -> Keyword:
        keyword = Keyword(
            id=uuid4(),
            project_id=project.id,
            keyword=text,
            keyword_normalized=normalize_keyword(text),
            **metrics,
        )
        db_session.add(keyword)
        db_session.commit()
        return keyword
    return _add


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def app(db_session, user):
    """
    The FastAPI app with database and auth overridden.

    Requests run as `user`; tests switch identity by overriding
    get_current_user again. Upstream clients are overridden per test.
    """
    from api.main import app as fastapi_app
    from rankpilot.auth.dependencies import get_current_user, get_current_user_optional
    from rankpilot.database.session import get_db

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_current_user] = lambda: user
    fastapi_app.dependency_overrides[get_current_user_optional] = lambda: user

    yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
