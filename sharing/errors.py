# sharing/errors.py
"""Error taxonomy for the upload/download core.

Every error carries a stable ``code`` slug and the HTTP ``status`` the
transport layer answers with, so route handlers never translate by hand.
"""


class ShareError(Exception):
    code = "error"
    status = 500
    retryable = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message, "retryable": self.retryable}
        for key, value in self.details.items():
            if value is not None:
                payload[_camel(key)] = value
        return payload


class ValidationError(ShareError):
    code = "invalid-request"
    status = 400


class IntegrityError(ShareError):
    code = "integrity-mismatch"
    status = 422


class ConcurrencyBusyError(ShareError):
    code = "server-busy"
    status = 503
    retryable = True

    def __init__(self, message: str, retry_after: int = 1, **details):
        super().__init__(message, **details)
        self.retry_after = retry_after


class StaleSessionError(ShareError):
    code = "stale-session"
    status = 409


class AssemblyError(ShareError):
    code = "assembly-failed"
    status = 500


class NotFoundError(ShareError):
    code = "not-found"
    status = 404


class ExpiredError(ShareError):
    code = "expired"
    status = 410


class AuthRequiredError(ShareError):
    code = "authorization-required"
    status = 401


class InvalidCredentialError(ShareError):
    code = "invalid-credential"
    status = 403


class StorageError(ShareError):
    code = "storage-error"
    status = 500


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
