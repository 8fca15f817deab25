"""
Single-function entry point: dispatches every route from one Lambda, for
deployments that front the whole service with a single HTTP API integration.
Per-route deployments point at each module's `lambda_handler` directly.
"""

import claim
import health
import intent
import status
import webhook
from utils import timeutil
from utils.http import json_response, method, path, preflight_response
from utils.logger import get_logger

logger = get_logger("router")

ROUTES = {
    ("POST", "/"): webhook.lambda_handler,
    ("POST", "/init"): intent.lambda_handler,
    ("POST", "/claim"): claim.lambda_handler,
    ("GET", "/status"): status.lambda_handler,
    ("GET", "/health"): health.lambda_handler,
    ("GET", "/version"): health.lambda_handler,
}

ENDPOINTS = {
    "GET /status?phone=254...&device_id=...": "Check subscription status for a device",
    "POST /init": "Register a payment intent before paying",
    "POST /claim": "Bind a confirmed payment to this device",
    "POST /": "Payment processor webhook endpoint",
    "GET /health": "Liveness check",
}


def lambda_handler(event, context):
    verb, route = method(event), path(event)

    if verb == "OPTIONS":
        return preflight_response()

    handler = ROUTES.get((verb, route))
    if handler is not None:
        return handler(event, context)

    if verb == "GET" and route == "/":
        return json_response(
            200,
            {
                "message": "M-Pesa Subscription Billing",
                "endpoints": ENDPOINTS,
                "status": "active",
                "timestamp": timeutil.isoformat(timeutil.utcnow()),
            },
        )

    logger.info("router.not_found", extra={"method": verb, "path": route})
    return json_response(404, {"error": "not_found", "path": route, "endpoints": ENDPOINTS})
