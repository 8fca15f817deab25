import router
from conftest import api_event, load_event, response_body


def test_preflight_returns_cors_headers():
    resp = router.lambda_handler(api_event("OPTIONS", "/status"), None)
    assert resp["statusCode"] == 204
    assert resp["headers"]["Access-Control-Allow-Origin"] == "*"
    assert "POST" in resp["headers"]["Access-Control-Allow-Methods"]
    assert "X-Lipana-Signature" in resp["headers"]["Access-Control-Allow-Headers"]


def test_routes_full_flow(stores, clock):
    created = response_body(router.lambda_handler(load_event("api_init.json"), None))
    assert "intent_id" in created

    paid = router.lambda_handler(
        api_event("POST", "/", {"id": "TXN_R1", "phone": "254712345678", "amount": 200, "status": "paid"}),
        None,
    )
    assert paid["statusCode"] == 200

    claimed = router.lambda_handler(
        api_event("POST", "/claim/", {"device_id": "dev-123", "intent_id": created["intent_id"]}), None
    )
    assert claimed["statusCode"] == 200

    status = response_body(router.lambda_handler(load_event("api_status.json"), None))
    assert status["premium"] is True


def test_health_and_version(monkeypatch):
    resp = router.lambda_handler(api_event("GET", "/health"), None)
    assert resp["statusCode"] == 200
    assert response_body(resp) == {"status": "ok"}

    monkeypatch.setenv("APP_VERSION", "v9")
    resp = router.lambda_handler(api_event("GET", "/version"), None)
    assert response_body(resp) == {"version": "v9"}


def test_index_lists_endpoints(clock):
    body = response_body(router.lambda_handler(api_event("GET", "/"), None))
    assert body["status"] == "active"
    assert "POST /claim" in body["endpoints"]


def test_unknown_route_is_404():
    resp = router.lambda_handler(api_event("DELETE", "/status"), None)
    assert resp["statusCode"] == 404
    assert response_body(resp)["error"] == "not_found"


def test_version_reports_misconfiguration(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    resp = router.lambda_handler(api_event("GET", "/version"), None)
    assert resp["statusCode"] == 500
    assert response_body(resp)["error"] == "server_misconfigured"
    assert router.lambda_handler(api_event("GET", "/health"), None)["statusCode"] == 200
