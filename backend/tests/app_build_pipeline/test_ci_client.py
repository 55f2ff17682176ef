import json

import httpx
import pytest

from app.services.app_build_ci_client import GitHubActionsClient
from app.services.app_build_dispatch import dispatch_build
from app.services.app_build_errors import AuthenticationError, CIRequestError, DispatchError
from tests.app_build_pipeline._helpers import make_config


def _patch_async_client(monkeypatch: pytest.MonkeyPatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)


@pytest.mark.asyncio
async def test_dispatch_posts_event_with_bundle_payload(monkeypatch: pytest.MonkeyPatch, tmp_path, bundle):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(204)

    _patch_async_client(monkeypatch, handler)
    client = GitHubActionsClient(make_config(tmp_path))

    await dispatch_build(client, event_type="build_app", app_bundle=bundle)

    assert captured["method"] == "POST"
    assert captured["path"] == "/repos/acme/app-builds/dispatches"
    assert captured["auth"] == "Bearer ci-token"
    assert captured["body"] == {"event_type": "build_app", "client_payload": bundle}


@pytest.mark.asyncio
async def test_dispatch_failure_is_reported_as_dispatch_error(monkeypatch: pytest.MonkeyPatch, tmp_path, bundle):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "Validation Failed"})

    _patch_async_client(monkeypatch, handler)
    client = GitHubActionsClient(make_config(tmp_path))

    with pytest.raises(DispatchError) as exc_info:
        await dispatch_build(client, event_type="build_app", app_bundle=bundle)
    assert "422" in str(exc_info.value)
    assert exc_info.value.stage == "dispatch"


@pytest.mark.asyncio
async def test_dispatch_network_error_is_reported_as_dispatch_error(monkeypatch: pytest.MonkeyPatch, tmp_path, bundle):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _patch_async_client(monkeypatch, handler)
    client = GitHubActionsClient(make_config(tmp_path))

    with pytest.raises(DispatchError):
        await dispatch_build(client, event_type="build_app", app_bundle=bundle)


@pytest.mark.asyncio
async def test_missing_token_is_authentication_error(tmp_path, bundle):
    client = GitHubActionsClient(make_config(tmp_path, ci_token=None))
    with pytest.raises(AuthenticationError):
        await dispatch_build(client, event_type="build_app", app_bundle=bundle)


@pytest.mark.asyncio
async def test_list_runs_get_run_and_artifacts(monkeypatch: pytest.MonkeyPatch, tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/repos/acme/app-builds/actions/runs":
            assert request.url.params.get("event") == "repository_dispatch"
            return httpx.Response(200, json={"total_count": 1, "workflow_runs": [{"id": 42, "status": "queued"}]})
        if path == "/repos/acme/app-builds/actions/runs/42":
            return httpx.Response(200, json={"id": 42, "status": "completed", "conclusion": "success"})
        if path == "/repos/acme/app-builds/actions/runs/42/artifacts":
            return httpx.Response(200, json={"artifacts": [{"id": 7, "name": "flutter-apks"}]})
        raise AssertionError(f"Unexpected request path: {path}")

    _patch_async_client(monkeypatch, handler)
    client = GitHubActionsClient(make_config(tmp_path))

    assert await client.list_runs() == [{"id": 42, "status": "queued"}]
    assert (await client.get_run(42))["status"] == "completed"
    assert await client.list_artifacts(42) == [{"id": 7, "name": "flutter-apks"}]
    assert client.artifact_reference_url(42, 7) == "https://github.com/acme/app-builds/actions/runs/42/artifacts/7"


@pytest.mark.asyncio
async def test_invalid_json_raises_ci_request_error(monkeypatch: pytest.MonkeyPatch, tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not json")

    _patch_async_client(monkeypatch, handler)
    client = GitHubActionsClient(make_config(tmp_path))

    with pytest.raises(CIRequestError):
        await client.get_run(1)
