"""Base class for chat channels."""

from abc import ABC, abstractmethod


class BaseChannel(ABC):
    """
    Abstract chat channel.

    A channel owns the connection to one chat service account: `start`
    runs until the channel is stopped, `send` delivers proactive messages.
    """

    name: str = "base"

    def __init__(self, account_id: str = "default"):
        self.account_id = account_id
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect and process inbound messages until stopped."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Request shutdown and release resources."""
        pass

    @abstractmethod
    async def send(self, to: str, text: str, media_url: str | None = None) -> str:
        """
        Send a message.

        Args:
            to: Channel-specific destination address.
            text: Message text.
            media_url: Optional attachment.

        Returns:
            The created message id.
        """
        pass

    @property
    def is_running(self) -> bool:
        """Check if the channel is running."""
        return self._running
