from collections.abc import Iterator
from contextlib import contextmanager


class BastionError(Exception):
    """Terminal failure of a reconcile pass."""


class ConfigurationError(BastionError):
    """A resource or setting the bastion depends on is missing."""


class InstanceStateError(BastionError):
    """The bastion instance is missing or regressed within a pass."""


class ProviderError(BastionError):
    """A cloud provider call failed or returned nothing usable."""

    def __init__(self, operation: str, resource: str, cause: object = None) -> None:
        self.operation = operation
        self.resource = resource
        self.cause = cause
        message = f"failed to {operation} {resource}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


@contextmanager
def provider_call(operation: str, resource: str) -> Iterator[None]:
    """Wraps any non-bastion exception raised inside into a ProviderError."""
    try:
        yield
    except BastionError:
        raise
    except Exception as e:
        raise ProviderError(operation, resource, e) from e
