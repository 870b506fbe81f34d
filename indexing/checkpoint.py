"""
Checkpoint policy: decides when a partition's progress is committed
"""

from typing import Mapping
from core.exceptions import CheckpointConfigError
import enum
import logging

logger = logging.getLogger(__name__)


class MetricType(str, enum.Enum):
    """Step metrics maintained by the runner for each partition"""
    READ_COUNT = "read_count"
    WRITE_COUNT = "write_count"
    CHECKPOINT_COUNT = "checkpoint_count"


class CheckpointPolicy:
    """
    Item-count checkpoint decision.

    The partition is ready to checkpoint every `item_count` reads, counted
    from the start of the current execution. The read counter is supplied by
    the caller through its step metrics; a missing counter means the host is
    misconfigured and is fatal.
    """

    def __init__(self, item_count: int):
        if item_count is None or item_count < 1:
            raise CheckpointConfigError(
                "Checkpoint item count must be >= 1",
                context={"item_count": item_count}
            )
        self.item_count = item_count

    def is_ready_to_checkpoint(self, metrics: Mapping[str, int]) -> bool:
        """
        Args:
            metrics: Step metrics keyed by MetricType values

        Returns:
            True iff the read count is a positive multiple of item_count
        """
        read_count = metrics.get(MetricType.READ_COUNT.value)
        if read_count is None:
            raise CheckpointConfigError(
                "Metric READ_COUNT not found",
                context={"available_metrics": sorted(metrics)}
            )
        return read_count > 0 and read_count % self.item_count == 0
