from fastapi.testclient import TestClient

from rose.main import create_app


def limited_client(settings, per_minute=3):
    limited = settings.model_copy(update={"rate_limit_enabled": True, "rate_limit_per_minute": per_minute})
    return TestClient(create_app(limited), raise_server_exceptions=False)


def test_health_is_exempt_from_rate_limit(settings):
    with limited_client(settings) as client:
        for _ in range(10):
            assert client.get("/health").status_code == 200


def test_rate_limit_headers_present_on_success(settings):
    with limited_client(settings) as client:
        response = client.post("/chat", json={"sessionId": "rl-headers", "productId": "couples", "message": "Bonjour"})

    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "3"
    assert response.headers["X-RateLimit-Remaining"] == "2"


def test_rate_limit_triggers_429(settings):
    with limited_client(settings) as client:
        statuses = []
        for index in range(4):
            response = client.post(
                "/chat",
                json={"sessionId": "rl-burst", "productId": "couples", "message": f"question {index}"},
            )
            statuses.append(response.status_code)

    assert statuses == [200, 200, 200, 429]
    body = response.json()
    assert body["error"] == "rate_limit_exceeded"
    assert body["retry_after_seconds"] >= 1
    assert response.headers["Retry-After"] == str(body["retry_after_seconds"])
    assert response.headers["X-RateLimit-Remaining"] == "0"
