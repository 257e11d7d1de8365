"""Error taxonomy for provider selection, fetching, delivery and probing."""
from __future__ import annotations


class QuotePushError(Exception):
    """Base class for all engine errors."""


class ProviderPoolError(QuotePushError):
    """Provider pool is empty or misconfigured."""


class EmptyPoolError(ProviderPoolError):
    """No provider with positive weight to select from."""


class ProviderIndexError(ProviderPoolError, IndexError):
    """Manual override index outside [0, N)."""

    def __init__(self, index: int, size: int) -> None:
        super().__init__(f"provider index {index} out of range [0, {size})")
        self.index = index
        self.size = size


class FetchError(QuotePushError):
    """Content fetch from one provider failed."""

    def __init__(self, provider_id: str, message: str) -> None:
        super().__init__(f"[{provider_id}] {message}")
        self.provider_id = provider_id


class FetchTimeout(FetchError):
    pass


class HttpError(FetchError):
    def __init__(self, provider_id: str, status: int) -> None:
        super().__init__(provider_id, f"HTTP error! status: {status}")
        self.status = status


class SchemaError(FetchError):
    """Payload does not match the provider's response schema."""


class NetworkError(FetchError):
    pass


class RemoteAnnotationError(QuotePushError):
    """Almanac lookup failed; callers degrade instead of propagating."""


class DeliveryError(QuotePushError):
    def __init__(self, destination: str, message: str) -> None:
        super().__init__(f"{destination}: {message}")
        self.destination = destination


class DeliveryUnreachable(DeliveryError):
    pass


class DeliveryRejected(DeliveryError):
    pass


class DirectoryError(QuotePushError):
    """Destinations cannot be enumerated; aborts a whole dispatch run."""


class DispatchBusyError(QuotePushError):
    """Another dispatch run is already in flight."""


class UsageError(QuotePushError):
    """Token usage endpoint returned no usable data."""
