"""
Index backend interface: the downstream consumer of scanned entities
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence


class IndexBackend(ABC):
    """
    Turns entities into index writes.

    The runner hands over one chunk per checkpoint interval, in ascending
    identifier order within a partition. Because restarts re-read the
    checkpointed row, `index` must tolerate seeing an entity twice (an
    upsert keyed by identifier is enough).

    Implementations signal a rejected chunk with IndexBackendError.
    """

    @abstractmethod
    async def index(self, entity_name: str, entities: Sequence[Any]) -> int:
        """
        Index a chunk of entities of one type.

        Returns:
            Number of entities written
        """
        pass

    async def purge(self, entity_names: Sequence[str]):
        """Drop all indexed documents of the given types (before the first execution)"""
        pass

    async def optimize(self, entity_names: Sequence[str]):
        """Compact the index of the given types (after every partition completed)"""
        pass

    async def flush(self, entity_names: Sequence[str]):
        """Make all writes of the given types durable and visible"""
        pass
