"""Abstract base for the agent chat transport."""

from abc import ABC, abstractmethod

from src.models import Completion


class TransportError(Exception):
    """Raised when a transport call fails (network, decode, or non-zero code)."""

    def __init__(self, agent_id: str, message: str, code: int | None = None) -> None:
        self.agent_id = agent_id
        self.code = code
        super().__init__(f"[{agent_id}] {message}")


class AgentTransport(ABC):
    """Talks to the external knowledge-base agents."""

    @abstractmethod
    async def create_session(self, agent_id: str, name: str) -> str:
        """Open a conversation session for an agent.

        Returns:
            The session id issued by the service.

        Raises:
            TransportError: On network failure or application-level rejection.
        """
        ...

    @abstractmethod
    async def complete(self, agent_id: str, question: str, session_id: str | None = None) -> Completion:
        """Ask an agent a question, optionally inside an existing session.

        Raises:
            TransportError: On network failure or application-level rejection.
        """
        ...

    async def close(self) -> None:
        """Release any held connections."""
        return None
