"""Shared fixtures: in-memory database, API client and plan/metric factories."""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import agencycomp.models  # noqa: F401
from agencycomp.core.database import Base, get_db
from agencycomp.main import app
from agencycomp.schemas.comp_plan import CompPlan, CompPlanAssignment, TeamMember
from agencycomp.schemas.payout import SubProducerMetrics


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def premium_ladder():
    return [
        {"min_threshold": 0, "commission_value": 5},
        {"min_threshold": 10000, "commission_value": 8},
        {"min_threshold": 25000, "commission_value": 12},
    ]


@pytest.fixture
def make_plan(premium_ladder):
    """Percent-of-premium plan on written premium unless overridden."""
    def _make(**overrides) -> CompPlan:
        fields = {
            "id": 1,
            "name": "Standard Producer",
            "payout_type": "percent_of_premium",
            "tier_metric": "premium",
            "tier_metric_source": "written",
            "tiers": premium_ladder,
        }
        fields.update(overrides)
        return CompPlan(**fields)
    return _make


@pytest.fixture
def make_metrics():
    def _make(code="P001", premium="0", items="0", **overrides) -> SubProducerMetrics:
        fields = {
            "code": code,
            "written_premium": Decimal(premium),
            "written_items": Decimal(items),
        }
        fields.update(overrides)
        return SubProducerMetrics(**fields)
    return _make


@pytest.fixture
def member():
    return TeamMember(id=1, name="Dana Producer", sub_producer_code="P001")


@pytest.fixture
def assignment():
    return CompPlanAssignment(team_member_id=1, comp_plan_id=1)
