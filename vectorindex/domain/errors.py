"""
Domain error taxonomy for index provisioning.

Every failure raised by an IIndexClient adapter is normalized to one of these
classes before it reaches the application layer. Only `retryable` errors are
ever retried by the RetryPolicy; the rest are resolved by the reconciler or
reported as failures.
Zero external dependencies.
"""


class IndexProvisioningError(Exception):
    kind: str = "Error"
    retryable: bool = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class RemoteUnavailable(IndexProvisioningError):
    """Network failure, throttling or a 5xx from the collection endpoint."""

    kind = "RemoteUnavailable"
    retryable = True


class NotFound(IndexProvisioningError):
    kind = "NotFound"


class AlreadyExists(IndexProvisioningError):
    kind = "AlreadyExists"


class FieldExists(IndexProvisioningError):
    kind = "FieldExists"


class InvalidSpec(IndexProvisioningError):
    """The desired specification can never be applied as given."""

    kind = "InvalidSpec"


class ConflictError(IndexProvisioningError):
    """Desired and observed state disagree on a field that cannot be changed in place."""

    kind = "Conflict"


class AuthorizationDenied(IndexProvisioningError):
    kind = "AuthorizationDenied"


class ReconcileTimeout(IndexProvisioningError):
    kind = "Timeout"
