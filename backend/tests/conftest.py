import os
import tempfile

# must run before app.config is imported
os.environ.setdefault('DISPATCH_DB_PATH', os.path.join(tempfile.mkdtemp(prefix='dispatch-test-'), 'dispatch.db'))
os.environ.setdefault('SIMULATION_SEED', 'pytest')

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
