"""
Shared fixtures for flowedit tests
"""
import pytest
from fastapi.testclient import TestClient

from flowedit_core.models import DEFAULT_CODE
from flowedit_backend.config import Settings
from flowedit_backend.main import create_app
from flowedit_backend.session import EditorSession


@pytest.fixture
def default_code():
    return DEFAULT_CODE


@pytest.fixture
def session():
    """A fresh session holding the default flowchart"""
    return EditorSession()


@pytest.fixture
def settings(tmp_path):
    return Settings(render_delay=0.01, state_file=tmp_path / "state.json")


@pytest.fixture
def client(session, settings):
    """API client bound to the `session` fixture, with lifespan running"""
    app = create_app(session=session, settings=settings)
    with TestClient(app) as test_client:
        yield test_client
