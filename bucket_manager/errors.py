"""Error taxonomy for the file manager API.

Every error carries the HTTP status it is rendered with, so handlers can raise
and let the request handler translate once.
"""


class AppError(Exception):
    status = 500

    def __init__(self, message="", **extra):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.extra = extra

    def to_json(self):
        data = {"error": self.message}
        data.update(self.extra)
        return data


class BadRequest(AppError):
    status = 400


class InvalidArgument(BadRequest):
    pass


class Unauthorized(AppError):
    status = 401


class NotFoundError(AppError):
    status = 404


class MethodNotAllowed(AppError):
    status = 405

    def __init__(self, allowed, message="Method not allowed"):
        super().__init__(message)
        self.allowed = sorted(allowed)


class Conflict(AppError):
    status = 409


class LengthRequired(AppError):
    status = 411


class PayloadTooLarge(AppError):
    status = 413


class InternalError(AppError):
    status = 500


class PartialFailure(InternalError):
    """Some objects of a folder move were copied and removed, others were kept."""

    def __init__(self, succeeded, failed, message=""):
        self.succeeded = list(succeeded)
        self.failed = list(failed)
        super().__init__(
            message or f"Moved {len(self.succeeded)} objects, {len(self.failed)} failed",
            succeeded=self.succeeded,
            failed=self.failed,
        )
