"""
Scan cursor: ordered, bounded, resumable read of one partition
"""

from typing import Any, Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import ResourceReleaseError, ScanError
from indexing.catalog import EntityCatalog
from schemas.plan import Checkpoint, PlannedPartition
import enum
import logging

logger = logging.getLogger(__name__)


class CursorState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"


class ScanCursor:
    """
    Reads the entities of one partition in ascending identifier order.

    The range read is always left-closed: [lower, upper[. On restart the
    lower bound is the checkpointed identifier itself, so the last row of
    the last committed chunk is read a second time (at-least-once).

    Each cursor owns a dedicated session for the whole scan and streams rows
    with a forward-only server-side cursor. Entities are expunged once read,
    so they reach the backend detached and the session stays small.
    """

    def __init__(
        self,
        catalog: EntityCatalog,
        session_factory: Callable[[], AsyncSession],
        partition: PlannedPartition,
        fetch_size: int = 200,
        max_results: Optional[int] = None
    ):
        self.catalog = catalog
        self.session_factory = session_factory
        self.partition = partition
        self.fetch_size = fetch_size
        self.max_results = max_results
        self.state = CursorState.CLOSED
        self.restarted = False

        self._session: Optional[AsyncSession] = None
        self._result = None
        self._last_seen: Any = None

    @property
    def partition_index(self) -> int:
        return self.partition.partition_index

    @property
    def entity_name(self) -> str:
        return self.partition.entity_name

    def _context(self, operation: str) -> dict:
        return {
            "partition_index": self.partition_index,
            "entity_name": self.entity_name,
            "operation": operation,
        }

    async def open(self, checkpoint: Optional[Checkpoint] = None):
        """
        Start the scan, from the checkpoint if one is given.

        Args:
            checkpoint: Last persisted checkpoint of this partition, None
                on the first execution
        """
        if self.state is CursorState.OPEN:
            raise ScanError("Cursor is already open", context=self._context("open"))
        if checkpoint is not None and checkpoint.partition_index != self.partition_index:
            raise ScanError(
                f"Checkpoint belongs to partition {checkpoint.partition_index}",
                context=self._context("open")
            )

        boundary = self.partition.boundary
        self.restarted = checkpoint is not None
        lower = checkpoint.last_seen_id if self.restarted else boundary.lower_bound
        self._last_seen = lower if self.restarted else None

        logger.info(
            f"[partition={self.partition_index}] open reader for {self.entity_name} "
            f"{boundary} (restarted={self.restarted}, from={lower})"
        )

        query = self.catalog.ordered_scan(self.entity_name, lower, boundary.upper_bound)
        if self.max_results is not None:
            query = query.limit(self.max_results)
        query = query.execution_options(yield_per=self.fetch_size)

        self._session = self.session_factory()
        self.state = CursorState.OPEN
        try:
            self._result = await self._session.stream_scalars(query)
        except SQLAlchemyError as e:
            await self.close()
            raise ScanError(
                f"Failed to open scan for {self.entity_name}",
                context=self._context("open"),
                original_exception=e
            )

    async def read(self) -> Optional[Any]:
        """
        Returns:
            The next entity, or None once the partition is drained
        """
        if self.state is not CursorState.OPEN:
            raise ScanError("Cursor is not open", context=self._context("read"))

        try:
            entity = await self._result.__anext__()
        except StopAsyncIteration:
            logger.info(f"[partition={self.partition_index}] no more results, read ends")
            return None
        except SQLAlchemyError as e:
            raise ScanError(
                f"Failed to read {self.entity_name}",
                context=self._context("read"),
                original_exception=e
            )

        self._last_seen = self.catalog.identifier_of(self.entity_name, entity)
        self._session.expunge(entity)
        logger.debug(f"[partition={self.partition_index}] read id={self._last_seen}")
        return entity

    def checkpoint_value(self) -> Any:
        """Identifier of the last entity read (or the restored checkpoint)"""
        return self._last_seen

    async def close(self):
        """
        Release the stream result, then the session.

        Each release is attempted regardless of the other's outcome; failures
        are logged and swallowed. Safe to call repeatedly.
        """
        result, self._result = self._result, None
        session, self._session = self._session, None

        if result is not None:
            try:
                await result.close()
                logger.debug(f"[partition={self.partition_index}] stream result closed")
            except Exception as e:
                self._log_release_failure("result", e)

        if session is not None:
            try:
                await session.close()
                logger.debug(f"[partition={self.partition_index}] session closed")
            except Exception as e:
                self._log_release_failure("session", e)

        self.state = CursorState.CLOSED

    def _log_release_failure(self, resource: str, e: Exception):
        error = ResourceReleaseError(
            f"Failed to release {resource}",
            context={"partition_index": self.partition_index, "resource": resource},
            original_exception=e
        )
        logger.error(str(error), extra={"error_context": error.to_dict()})

    async def __aenter__(self) -> "ScanCursor":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
