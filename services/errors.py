"""Exception hierarchy for the gateway client.

These errors are raised by the identity and signing layers. The connection
engine converts them into events; none of them cross its public API.
"""


class GatewayClientError(Exception):
    """Base exception for all gateway client errors."""


class IdentityError(GatewayClientError):
    """The device identity could not be obtained."""


class IdentityCorruptedError(IdentityError):
    """A persisted identity exists but is unreadable or inconsistent."""


class IdentityStoreError(IdentityError):
    """The secure store could not be read or written."""


class SigningError(GatewayClientError):
    """The challenge could not be signed."""


class SigningEncodingError(SigningError):
    """The signing message could not be encoded to bytes."""
