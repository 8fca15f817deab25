from utils.http import json_response


class BillingError(Exception):
    """Base for errors that map onto an HTTP response."""

    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str, reason: str = None, **details):
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.message, "reason": self.reason}
        body.update(self.details)
        return body

    def to_response(self) -> dict:
        return json_response(self.status_code, self.to_body())


class ValidationError(BillingError):
    status_code = 400
    reason = "invalid_request"


class AuthError(BillingError):
    status_code = 401
    reason = "invalid_signature"


class ConflictError(BillingError):
    status_code = 403
    reason = "device_mismatch"


class NotFoundError(BillingError):
    status_code = 404
    reason = "not_found"


class PendingError(BillingError):
    """Payment acknowledged by an intent but not yet reconciled; the client should retry."""

    status_code = 202
    reason = "payment_pending"

    def __init__(self, message: str, retry_after_seconds: int, **details):
        super().__init__(message, retry_after_seconds=retry_after_seconds, **details)
        self.retry_after_seconds = retry_after_seconds

    def to_body(self) -> dict:
        body = {"reason": self.reason, "message": self.message}
        body.update(self.details)
        return body

    def to_response(self) -> dict:
        return json_response(
            self.status_code,
            self.to_body(),
            headers={"Retry-After": str(self.retry_after_seconds)},
        )
