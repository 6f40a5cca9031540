from __future__ import annotations

import base64
import datetime as dt
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from genproxy.config import (
    GuardConfig,
    HuggingFaceConfig,
    PollinationsConfig,
    Settings,
    StabilityConfig,
    UpstreamConfig,
)
from genproxy.main import create_app
from genproxy.services.generation import GenerationService, format_timestamp
from genproxy.services.providers import build_registry

AUTH = {"Authorization": "Bearer good-token"}


def make_settings(**overrides) -> Settings:
    values = dict(
        stability=StabilityConfig(api_key="sk-test"),
        huggingface=HuggingFaceConfig(api_key="hf-test"),
        pollinations=PollinationsConfig(api_key=None),
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def upstream(make_transport):
    """Upstream transport whose responses are set per test."""

    state = {"handler": lambda request: httpx.Response(200, json={"artifacts": [{"base64": "AAAA"}]})}
    transport = make_transport(lambda request: state["handler"](request))
    transport.state = state
    return transport


def build_client(fake_verifier, upstream, settings: Settings | None = None) -> TestClient:
    app = create_app(
        settings or make_settings(),
        verifier=fake_verifier,
        http_client=httpx.Client(transport=upstream),
    )
    return TestClient(app)


def test_missing_authorization_is_401_without_upstream_calls(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "stability", "prompt": "a cat"})

    assert response.status_code == 401
    assert response.json() == {"error": "Missing Authorization Bearer token"}
    assert upstream.requests == []
    assert fake_verifier.calls == []


def test_non_bearer_authorization_is_401(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post(
        "/generate",
        json={"provider": "stability", "prompt": "a cat"},
        headers={"Authorization": "Basic dXNlcjpwYXNz"},
    )

    assert response.status_code == 401
    assert upstream.requests == []


def test_invalid_token_is_401(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post(
        "/generate",
        json={"provider": "stability", "prompt": "a cat"},
        headers={"Authorization": "Bearer expired-token"},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid Firebase ID token"}
    assert fake_verifier.calls == ["expired-token"]
    assert upstream.requests == []


def test_auth_is_checked_before_body_parsing(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 401


@pytest.mark.parametrize(
    "payload",
    [
        {"prompt": "a cat"},
        {"provider": "stability"},
        {"provider": "stability", "prompt": ""},
        {"provider": "", "prompt": "a cat"},
        {"provider": "stability", "prompt": "   "},
    ],
)
def test_missing_fields_are_400_without_upstream_calls(fake_verifier, upstream, payload) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json=payload, headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "provider and prompt required"}
    assert upstream.requests == []


@pytest.mark.parametrize(
    "body",
    [b"{not json", b"[1, 2]", b'{"provider": "stability", "prompt": "a", "width": -1}'],
)
def test_malformed_bodies_are_400(fake_verifier, upstream, body) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post(
        "/generate", content=body, headers={**AUTH, "content-type": "application/json"}
    )

    assert response.status_code == 400
    assert "error" in response.json()
    assert upstream.requests == []


def test_unknown_provider_is_400(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "dalle", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 400
    assert "unknown provider" in response.json()["error"].lower()
    assert upstream.requests == []


def test_stability_success_envelope(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post(
        "/generate",
        json={"provider": "stability", "prompt": "a cat"},
        headers={**AUTH, "X-Request-ID": "rid-1"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["provider"] == "stability"
    assert data["model"] is None
    assert data["images"] == [{"b64": "AAAA", "mime": "image/png"}]
    assert data["meta"]["uid"] == "user-123"
    assert data["meta"]["timestamp"].endswith("Z")
    dt.datetime.fromisoformat(data["meta"]["timestamp"].replace("Z", "+00:00"))
    assert response.headers["X-Request-ID"] == "rid-1"


def test_options_override_top_level_hints(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post(
        "/generate",
        json={
            "provider": "stability",
            "model": "sdxl",
            "prompt": "a cat",
            "width": 640,
            "height": 640,
            "steps": 25,
            "options": {"width": 1024, "cfg_scale": 12},
        },
        headers=AUTH,
    )

    assert response.status_code == 200
    assert response.json()["model"] == "sdxl"
    request = upstream.requests[0]
    assert "/v1/generation/sdxl/text-to-image" in str(request.url)
    body = json.loads(request.content)
    assert body["width"] == 1024
    assert body["height"] == 640
    assert body["steps"] == 25
    assert body["cfg_scale"] == 12


def test_huggingface_upstream_error_is_500(fake_verifier, upstream) -> None:
    upstream.state["handler"] = lambda request: httpx.Response(503, text="model loading")
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "huggingface", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 500
    error = response.json()["error"]
    assert "HuggingFace error 503" in error
    assert "model loading" in error


def test_upstream_errors_can_be_hidden(fake_verifier, upstream) -> None:
    upstream.state["handler"] = lambda request: httpx.Response(503, text="model loading")
    settings = make_settings(upstream=UpstreamConfig(expose_errors=False))
    client = build_client(fake_verifier, upstream, settings)

    response = client.post("/generate", json={"provider": "huggingface", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "internal error"}


def test_huggingface_raw_bytes_round_trip(fake_verifier, upstream) -> None:
    raw = bytes(range(200))
    upstream.state["handler"] = lambda request: httpx.Response(
        200, content=raw, headers={"content-type": "image/png"}
    )
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "huggingface", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 200
    assert base64.b64decode(response.json()["images"][0]["b64"]) == raw


def test_pollinations_secondary_fetch(fake_verifier, upstream) -> None:
    jpeg = b"\xff\xd8\xff\xe0pollinations"

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"url": "http://x/img.png"})
        return httpx.Response(200, content=jpeg, headers={"content-type": "image/jpeg"})

    upstream.state["handler"] = handler
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "pollinations", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 200
    images = response.json()["images"]
    assert images == [{"b64": base64.b64encode(jpeg).decode("ascii"), "mime": "image/jpeg"}]
    assert "Authorization" not in upstream.requests[0].headers


def test_pollinations_empty_result_is_success(fake_verifier, upstream) -> None:
    upstream.state["handler"] = lambda request: httpx.Response(200, json={})
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "pollinations", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 200
    assert response.json()["images"] == []


def test_missing_provider_key_is_500_without_upstream_calls(fake_verifier, upstream) -> None:
    settings = make_settings(stability=StabilityConfig(api_key=None))
    client = build_client(fake_verifier, upstream, settings)

    response = client.post("/generate", json={"provider": "stability", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 500
    assert "STABILITY_API_KEY" in response.json()["error"]
    assert upstream.requests == []


def test_invalid_option_type_is_400(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.post(
        "/generate",
        json={"provider": "stability", "prompt": "a cat", "options": {"samples": "many"}},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert upstream.requests == []


def test_transport_failure_is_500(fake_verifier, upstream) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    upstream.state["handler"] = handler
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "stability", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 500
    assert "connection refused" in response.json()["error"]


def test_oversized_body_is_413(fake_verifier, upstream) -> None:
    settings = make_settings(guard=GuardConfig(max_body_bytes=64))
    client = build_client(fake_verifier, upstream, settings)

    response = client.post(
        "/generate", json={"provider": "stability", "prompt": "x" * 200}, headers=AUTH
    )

    assert response.status_code == 413
    assert "error" in response.json()
    assert fake_verifier.calls == []


def test_rate_limit_returns_429(fake_verifier, upstream) -> None:
    settings = make_settings(guard=GuardConfig(rate_limit_max=2, rate_limit_window_seconds=60))
    client = build_client(fake_verifier, upstream, settings)
    payload = {"provider": "stability", "prompt": "a cat"}

    assert client.post("/generate", json=payload, headers=AUTH).status_code == 200
    assert client.post("/generate", json=payload, headers=AUTH).status_code == 200
    throttled = client.post("/generate", json=payload, headers=AUTH)

    assert throttled.status_code == 429
    assert int(throttled.headers["Retry-After"]) >= 1
    assert len(upstream.requests) == 2


def test_health_is_not_authenticated(fake_verifier, upstream) -> None:
    client = build_client(fake_verifier, upstream)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_service_uses_injected_clock(fake_verifier, upstream) -> None:
    moment = dt.datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=dt.timezone.utc)
    registry = build_registry(make_settings(), httpx.Client(transport=upstream))
    service = GenerationService(fake_verifier, registry, clock=lambda: moment)

    envelope = service.handle(
        "Bearer good-token", json.dumps({"provider": "stability", "prompt": "a cat"}).encode()
    )

    assert envelope.status_code == 200
    assert envelope.body["meta"] == {"uid": "user-123", "timestamp": "2024-05-06T07:08:09.123Z"}
    assert format_timestamp(moment) == "2024-05-06T07:08:09.123Z"


@pytest.mark.parametrize(
    "provider,expected_suffix",
    [
        ("huggingface", "/models/stabilityai/stable-diffusion-2"),
        ("stability", "/v1/generation/stable-diffusion-v1-5/text-to-image"),
    ],
)
def test_blank_model_falls_back_to_default(fake_verifier, upstream, provider, expected_suffix) -> None:
    upstream.state["handler"] = lambda request: httpx.Response(200, content=b"img")
    client = build_client(fake_verifier, upstream)

    response = client.post(
        "/generate", json={"provider": provider, "prompt": "a cat", "model": ""}, headers=AUTH
    )

    assert response.status_code == 200
    assert str(upstream.requests[0].url).endswith(expected_suffix)


def test_unparseable_upstream_image_is_500(fake_verifier, upstream) -> None:
    upstream.state["handler"] = lambda request: httpx.Response(200, json=[{"generated_image": 12345}])
    client = build_client(fake_verifier, upstream)

    response = client.post("/generate", json={"provider": "huggingface", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 500
    assert "HuggingFace" in response.json()["error"]


def test_rate_limit_ignores_non_post_requests(fake_verifier, upstream) -> None:
    settings = make_settings(guard=GuardConfig(rate_limit_max=1, rate_limit_window_seconds=60))
    client = build_client(fake_verifier, upstream, settings)

    assert client.get("/generate").status_code == 405
    assert client.get("/generate").status_code == 405
    response = client.post("/generate", json={"provider": "stability", "prompt": "a cat"}, headers=AUTH)

    assert response.status_code == 200
