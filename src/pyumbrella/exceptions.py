"""Custom exception hierarchy for pyumbrella."""

from __future__ import annotations


class UmbrellaError(Exception):
    """Base exception for all pyumbrella errors."""


class UmbrellaConfigError(UmbrellaError):
    """Invalid or missing configuration."""


class ParseError(UmbrellaError):
    """Inbound device payload could not be decoded."""

    def __init__(
        self,
        message: str,
        *,
        topic: str = "",
        payload: bytes = b"",
    ) -> None:
        self.topic = topic
        self.payload = payload
        super().__init__(message)


class AccountNotFoundError(UmbrellaError):
    """No account (or no pending code) exists for the identifier."""

    def __init__(self, message: str, *, identifier: str = "") -> None:
        self.identifier = identifier
        super().__init__(message)


class InvalidOrExpiredCodeError(UmbrellaError):
    """Supplied one-time code does not match or has expired."""


class UnauthorizedError(UmbrellaError):
    """Identifier/credential pair did not verify."""


class DeliveryError(UmbrellaError):
    """Outbound notification or bus publish failed.

    Never propagated out of the relay; carried inside
    :class:`~pyumbrella.notifier.DeliveryResult` and logged.
    """

    def __init__(self, message: str, *, recipient: str = "") -> None:
        self.recipient = recipient
        super().__init__(message)


class DirectoryError(UmbrellaError):
    """Directory store unreachable or write failed."""
