from hbg_core.exceptions import HbgError


class HubMethodNotFound(HbgError):
    """The invocation target is not registered on the hub."""

    status_code = 404


class InvalidMessage(HbgError):
    """The frame is not a well-formed invocation."""

    status_code = 400
