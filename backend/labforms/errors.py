"""Error kinds raised by the form and application services.

Services raise these at the point of detection and never recover from
them locally. `status_code` is a hint for whatever boundary layer turns
them into responses.
"""


class LabFormsError(Exception):
    """Base class for every service-level rejection."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LabFormsError):
    """A referenced form, question, option or application does not exist."""
    status_code = 404


class InvalidStateError(LabFormsError):
    """The operation violates a lifecycle precondition."""
    status_code = 409


class InvalidArgumentError(LabFormsError, ValueError):
    """Cross-entity mismatch, e.g. an option that belongs to another question."""
    status_code = 400


class AccessDeniedError(LabFormsError):
    """Caller identity does not own the application."""
    status_code = 403
