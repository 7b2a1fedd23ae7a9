"""Data models for memsampler."""

import math
import os
from dataclasses import dataclass
from enum import Enum

from memsampler.units import Unit

MIN_DELAY = 0.01  # Seconds
DEFAULT_COUNT = 10
DEFAULT_OVERHEAD_US = 600  # Per-iteration processing cost subtracted from the sleep

# Absorbs float error in period / delay, e.g. 0.7 / 0.1 == 6.999999999999999
_COUNT_EPSILON = 1e-9


class MemsamplerError(Exception):
    """Base class for memsampler errors."""


class ScheduleError(MemsamplerError, ValueError):
    """Invalid sampling schedule."""


class InterfaceUnavailable(MemsamplerError):
    """A kernel interface file could not be opened."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        message = f"kernel interface unavailable: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class MissingMetric(MemsamplerError):
    """A kernel interface did not report a required field."""

    def __init__(self, path: str, key: str) -> None:
        self.path = path
        self.key = key
        super().__init__(f"{path}: required field {key!r} not reported")


class AccountingPolicy(Enum):
    """How the available memory figure is derived."""

    STRICT = "strict"
    HEURISTIC = "heuristic"


@dataclass(slots=True, frozen=True)
class SampleSchedule:
    """
    Immutable sampling cadence.

    Exactly one of count or period is authoritative; the other is derived
    by ``resolve``. ``deadline_bound`` records whether the period was the
    user's choice, in which case the sampler also stops at the deadline.
    """

    delay: float  # Seconds between samples
    count: int
    period: float  # Seconds
    deadline_bound: bool = False

    @classmethod
    def resolve(
        cls,
        delay: float,
        count: int | None = None,
        period: float | None = None,
    ) -> "SampleSchedule":
        """
        Build a consistent schedule from user input.

        Args:
            delay: Seconds between samples, at least MIN_DELAY.
            count: Number of samples. Mutually exclusive with period.
            period: Total run time in seconds. Mutually exclusive with count.

        Raises:
            ScheduleError: If the combination is invalid.
        """
        if not math.isfinite(delay):
            raise ScheduleError(f"delay must be a finite number of seconds, got {delay}")
        if delay < MIN_DELAY:
            raise ScheduleError(f"delay must be at least {MIN_DELAY} seconds, got {delay}")
        if count is not None and period is not None:
            raise ScheduleError("count and period are mutually exclusive")

        if period is not None:
            if not math.isfinite(period):
                raise ScheduleError(f"period must be a finite number of seconds, got {period}")
            if period < delay:
                raise ScheduleError(
                    f"period ({period}s) must be at least one delay ({delay}s)"
                )
            derived = int(period / delay + _COUNT_EPSILON)
            return cls(delay=delay, count=derived, period=period, deadline_bound=True)

        if count is None:
            count = DEFAULT_COUNT
        if count < 1:
            raise ScheduleError(f"count must be a positive integer, got {count}")
        return cls(delay=delay, count=count, period=delay * count)


@dataclass(slots=True, frozen=True)
class Topology:
    """NUMA layout discovered at startup."""

    node_count: int

    @property
    def node_ids(self) -> range:
        """Node ids in ascending order."""
        return range(self.node_count)


@dataclass(slots=True, frozen=True)
class NodeMemory:
    """Derived per-node figures, in KiB."""

    node_id: int
    avail: int
    huge_free: int


@dataclass(slots=True, frozen=True)
class MemorySnapshot:
    """One sample of derived memory state. All sizes are KiB."""

    timestamp: float  # Epoch seconds
    total: int
    used: int
    free: int
    cached: int
    buffers: int
    slab: int
    committed_as: int
    commit_limit: int
    dirty: int
    writeback: int
    anon: int
    avail: int
    nodes: tuple[NodeMemory, ...] = ()

    def global_values(self) -> tuple[int, ...]:
        """Global fields in report column order."""
        return (
            self.total,
            self.used,
            self.free,
            self.cached,
            self.buffers,
            self.slab,
            self.committed_as,
            self.commit_limit,
            self.dirty,
            self.writeback,
            self.anon,
            self.avail,
        )


@dataclass(slots=True, frozen=True)
class KernelPaths:
    """Locations of the kernel interfaces read by the sampler."""

    meminfo: str = "/proc/meminfo"
    node_meminfo: str = "/sys/devices/system/node/node{node}/meminfo"
    cpuinfo: str = "/proc/cpuinfo"
    overcommit: str = "/proc/sys/vm/overcommit_memory"

    @classmethod
    def under(cls, root: str) -> "KernelPaths":
        """Re-root every interface below ``root``."""
        defaults = cls()
        return cls(
            meminfo=_reroot(root, defaults.meminfo),
            node_meminfo=_reroot(root, defaults.node_meminfo),
            cpuinfo=_reroot(root, defaults.cpuinfo),
            overcommit=_reroot(root, defaults.overcommit),
        )

    def node(self, node_id: int) -> str:
        """Path of one node's meminfo."""
        return self.node_meminfo.format(node=node_id)


def _reroot(root: str, path: str) -> str:
    return os.path.join(root, path.lstrip("/"))


@dataclass(slots=True, frozen=True)
class SamplerConfig:
    """Everything the sampler needs, built once by the command line."""

    schedule: SampleSchedule
    unit: Unit = Unit.MIB
    paths: KernelPaths = KernelPaths()
    overhead_us: int = DEFAULT_OVERHEAD_US
