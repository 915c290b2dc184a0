#######################
# ERROR TAXONOMY
#######################


class ContentError(Exception):
    """Base class for errors surfaced at the HTTP boundary.

    `status_code` is the HTTP status the app's exception handler answers with,
    `kind` is the short name put in the response body so callers can tell
    client-fixable failures apart from server-side ones.
    """

    status_code: int = 500
    kind: str = "content_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ContentError):
    status_code = 400
    kind = "validation_error"


class NotFoundError(ContentError):
    status_code = 404
    kind = "not_found"


class UpstreamError(ContentError):
    """The remote LLM call failed (network, non-2xx or malformed envelope)."""

    status_code = 502
    kind = "upstream_error"


class UpstreamTimeoutError(UpstreamError):
    status_code = 504
    kind = "upstream_timeout"


class MalformedContentError(ContentError):
    """Upstream text is not valid QuestionSet JSON. Recovered inside the gateway."""

    kind = "malformed_content"

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


class ExportError(ContentError):
    status_code = 500
    kind = "export_error"


class RenderTimeoutError(ExportError):
    status_code = 504
    kind = "render_timeout"
