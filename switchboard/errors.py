"""
Error taxonomy shared by the repositories, the relay and the HTTP layer.
Each error knows the status it surfaces as; the app maps them in one place.
"""


class SwitchboardError(Exception):
    """Base class for errors that are safe to show to the caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(SwitchboardError):
    """An entity looked up by id does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(SwitchboardError):
    """A required field is missing or empty, or an update changes nothing."""

    status_code = 400


class ConfigurationError(SwitchboardError):
    """The completion provider is not usable (no credential configured)."""

    status_code = 500


class UpstreamError(SwitchboardError):
    """The completion provider failed or reported an error mid-stream."""

    status_code = 502
