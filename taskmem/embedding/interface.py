"""Base class every embedding provider implements."""

from abc import ABC, abstractmethod


class EmbeddingInterface(ABC):

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Vector length. The memories.embedding column is sized to match."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        ...
