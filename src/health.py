from utils.config import load_settings
from utils.http import json_response, method, path
from utils.logger import log


def lambda_handler(event, context):
    route = path(event)
    log("health.check", path=route, method=method(event))
    if route.endswith("/version"):
        try:
            settings = load_settings()
        except RuntimeError:
            return json_response(500, {"error": "server_misconfigured"})
        return json_response(200, {"version": settings.app_version})
    return json_response(200, {"status": "ok"})
