"""Error taxonomy shared by the channels, the store and the API layer."""


class HubError(Exception):
    """Base class for failures surfaced to the caller."""

    status_code = 400

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class Unauthorized(HubError):
    """The requester may not perform this operation (e.g. deleting someone else's message)."""

    status_code = 403


class NotFound(HubError):
    status_code = 404


class ValidationError(HubError):
    """Empty text, missing hub/user context, malformed input."""

    status_code = 422


class TransientIOError(HubError):
    """Any store failure: network, permission denied at the store, timeout."""

    status_code = 503


class NotificationUnavailable(HubError):
    """The platform lacks, or the user denied, system notifications."""

    status_code = 501
