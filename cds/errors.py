"""Error taxonomy for the CDS core.

Every business error carries a machine-readable ``code``, a human-readable
``message``, optional ``detail`` and the HTTP status the API layer renders it
with. Services raise; the handler registered in ``cds.main`` formats.
"""


class CDSError(Exception):
    type = "error"
    code = "UNKNOWN_ERROR"
    http_status = 500

    def __init__(self, message: str, code: str | None = None, detail=None, http_status: int | None = None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class NotFoundError(CDSError):
    """Patient, alert or medication absent. Never retried."""

    type = "not_found"
    code = "NOT_FOUND"
    http_status = 404


class ForbiddenError(CDSError):
    """Attempt to delete or reclassify a system-defined alert."""

    type = "forbidden"
    code = "FORBIDDEN"
    http_status = 403


class InvalidRequestError(CDSError):
    type = "validation_error"
    code = "VALIDATION_ERROR"
    http_status = 400


class InteractionCheckError(CDSError):
    """A phase of the combined interaction check failed; no partial result is returned."""

    type = "error"
    code = "INTERACTION_CHECK_FAILED"
    http_status = 500

    def __init__(self, phase: str, cause: Exception):
        self.phase = phase
        super().__init__(
            f"Error checking {phase}: {cause}",
            detail={"phase": phase},
        )
