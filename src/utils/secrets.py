import json
from typing import Optional

import boto3

from utils.logger import get_logger

logger = get_logger("secrets")

# Cached per container; the secret does not rotate within a Lambda lifetime.
_cache = {}


def _fetch_secret_string(secret_name: str, region_name: str) -> str:
    logger.info(
        "Fetching webhook secret from Secrets Manager",
        extra={"secret_name": secret_name, "region": region_name},
    )

    client = boto3.client("secretsmanager", region_name=region_name)
    resp = client.get_secret_value(SecretId=secret_name)
    secret_str = resp.get("SecretString")

    if not secret_str:
        msg = f"Secret '{secret_name}' has no SecretString payload"
        logger.error(msg)
        raise RuntimeError(msg)

    return secret_str


def get_webhook_secret(settings) -> Optional[str]:
    """
    Resolve the shared HMAC secret used to sign processor webhooks.

    WEBHOOK_SECRET wins when set. Otherwise WEBHOOK_SECRET_NAME names a
    Secrets Manager secret whose value is either the raw secret or a JSON
    object such as:

        {
          "webhook_secret": "..."
        }

    Returns None when neither is configured (signature checks disabled).
    """
    if settings.webhook_secret:
        return settings.webhook_secret

    secret_name = settings.webhook_secret_name
    if not secret_name:
        return None

    if secret_name in _cache:
        return _cache[secret_name]

    secret_str = _fetch_secret_string(secret_name, settings.region)

    try:
        data = json.loads(secret_str)
    except json.JSONDecodeError:
        data = secret_str

    if isinstance(data, dict):
        secret = data.get("webhook_secret") or data.get("secret")
        if not secret:
            msg = f"Secret '{secret_name}' has no 'webhook_secret' field"
            logger.error(msg)
            raise RuntimeError(msg)
    else:
        secret = str(data)

    _cache[secret_name] = secret
    return secret
