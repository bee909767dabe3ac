# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from fakes import FakeCalendarService, build_facade
from roombook.main import create_app
from roombook.services.scheduling import SchedulingFacade, get_scheduler


@pytest.fixture
def calendar() -> FakeCalendarService:
    return FakeCalendarService()


@pytest.fixture
def facade(calendar: FakeCalendarService) -> SchedulingFacade:
    return build_facade(calendar)


@pytest.fixture
def client(facade: SchedulingFacade):
    """
    TestClient whose scheduler is wired to the in-memory calendar.
    """
    app = create_app()
    app.dependency_overrides[get_scheduler] = lambda: facade
    with TestClient(app) as test_client:
        yield test_client
