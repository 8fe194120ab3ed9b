"""SurveyMail — Abstract Mail Transport."""

from abc import ABC, abstractmethod


class MailTransport(ABC):
    """Abstract base for outbound mail delivery.

    A transport is a black box with one operation: deliver an HTML message to
    one address, or raise TransportError. Retrying is the caller's concern.
    """

    name: str = "base"

    @abstractmethod
    async def send(self, to: str, subject: str, html_body: str) -> None:
        """Deliver one message.

        Args:
            to: Recipient email address.
            subject: Subject line.
            html_body: Fully rendered HTML body.

        Raises:
            TransportError: the message could not be handed to the provider.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this transport is configured and ready."""
        ...

    async def close(self) -> None:
        """Release any held connections."""
        return None
