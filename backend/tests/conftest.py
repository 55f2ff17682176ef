import os
import sys

import pytest
import pytest_asyncio

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tests.app_build_pipeline._helpers import demo_bundle, make_config, make_template


@pytest.fixture
def template_dir(tmp_path):
    return make_template(tmp_path)


@pytest.fixture
def build_config(tmp_path, template_dir):
    return make_config(tmp_path)


@pytest.fixture
def bundle():
    return demo_bundle()


@pytest_asyncio.fixture
async def client():
    from main import app

    from httpx import AsyncClient, ASGITransport
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
