"""Sampling engine for memsampler."""

import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum

import psutil

from memsampler.models import (
    AccountingPolicy,
    KernelPaths,
    MemorySnapshot,
    MissingMetric,
    NodeMemory,
    SamplerConfig,
    Topology,
)
from memsampler.report import ReportRenderer
from memsampler.sources import read_flat, read_node_scoped

logger = logging.getLogger(__name__)

MICROS_PER_SECOND = 1_000_000


def _require(metrics: Mapping[str, int], key: str, path: str) -> int:
    try:
        return metrics[key]
    except KeyError:
        raise MissingMetric(path, key) from None


class SnapshotBuilder:
    """
    Turns one pass over the kernel interfaces into a MemorySnapshot.

    The accounting policy and topology are fixed for the builder's lifetime;
    the counters are re-read on every call to ``build``.
    """

    def __init__(
        self,
        policy: AccountingPolicy,
        topology: Topology,
        paths: KernelPaths | None = None,
    ) -> None:
        self._policy = policy
        self._topology = topology
        self._paths = paths or KernelPaths()

    @property
    def policy(self) -> AccountingPolicy:
        """Accounting policy used for the global Avail figure."""
        return self._policy

    @property
    def topology(self) -> Topology:
        """Node layout the builder reads."""
        return self._topology

    def build(self, timestamp: float) -> MemorySnapshot:
        """
        Read the interfaces and derive a snapshot.

        Raises:
            InterfaceUnavailable: If any interface cannot be opened.
            MissingMetric: If a required field is absent.
        """
        path = self._paths.meminfo
        raw = read_flat(path)

        def get(key: str) -> int:
            return _require(raw, key, path)

        avail = self.derive_avail(raw, path)
        total = get("MemTotal")
        hugepage_size = get("Hugepagesize")

        nodes = tuple(self._build_node(node_id, hugepage_size) for node_id in self._topology.node_ids)

        return MemorySnapshot(
            timestamp=timestamp,
            total=total,
            used=total - avail,
            free=get("MemFree"),
            cached=get("Cached"),
            buffers=get("Buffers"),
            slab=get("Slab"),
            committed_as=get("Committed_AS"),
            commit_limit=get("CommitLimit"),
            dirty=get("Dirty"),
            writeback=get("Writeback"),
            anon=get("AnonPages"),
            avail=avail,
            nodes=nodes,
        )

    def derive_avail(self, raw: Mapping[str, int], path: str = "meminfo") -> int:
        """Available memory in KiB under the builder's accounting policy."""
        if self._policy is AccountingPolicy.STRICT:
            return _require(raw, "CommitLimit", path) - _require(raw, "Committed_AS", path)
        return (
            _require(raw, "MemFree", path)
            + _require(raw, "Cached", path)
            + _require(raw, "Buffers", path)
            + _require(raw, "SReclaimable", path)
        )

    def _build_node(self, node_id: int, hugepage_size: int) -> NodeMemory:
        """Derive one node's figures. Nodes report FilePages, not Cached."""
        path = self._paths.node(node_id)
        node_raw = read_node_scoped(path).get(node_id, {})

        def get(key: str) -> int:
            return _require(node_raw, key, path)

        return NodeMemory(
            node_id=node_id,
            avail=get("MemFree") + get("FilePages") + get("SReclaimable"),
            huge_free=get("HugePages_Free") * hugepage_size,
        )


class SamplerState(Enum):
    """Lifecycle of a sampling run."""

    IDLE = "idle"
    SAMPLING = "sampling"
    DONE = "done"


class Sampler:
    """
    Drives the sampling cadence.

    Sleeps, timestamps, builds a snapshot and renders it, one iteration at a
    time. Stops after ``count`` rows, or once a sample lands past the period
    deadline when the schedule is period bound.
    """

    def __init__(
        self,
        config: SamplerConfig,
        builder: SnapshotBuilder,
        renderer: ReportRenderer,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the Sampler.

        Args:
            config: Resolved sampler configuration.
            builder: Snapshot builder for this host.
            renderer: Report renderer receiving each snapshot.
            clock: Returns the current time in epoch seconds.
            sleep: Suspends for the given number of seconds.
        """
        self._config = config
        self._builder = builder
        self._renderer = renderer
        self._clock = clock
        self._sleep = sleep
        self._state = SamplerState.IDLE
        self._samples = 0

    @property
    def state(self) -> SamplerState:
        """Current lifecycle state."""
        return self._state

    @property
    def samples(self) -> int:
        """Number of rows rendered so far."""
        return self._samples

    @property
    def interval_us(self) -> float:
        """Sleep per iteration: the delay less the processing overhead."""
        return self._config.schedule.delay * MICROS_PER_SECOND - self._config.overhead_us

    def run(self) -> int:
        """
        Run the sampling loop to completion.

        Returns:
            Number of rows rendered.

        Raises:
            InterfaceUnavailable: If a kernel interface disappears mid-run.
            MissingMetric: If a required field is absent.
        """
        schedule = self._config.schedule
        sleep_seconds = max(0.0, self.interval_us / MICROS_PER_SECOND)
        start = self._clock()
        deadline = start + schedule.period if schedule.deadline_bound else None
        previous = start

        self._state = SamplerState.SAMPLING
        try:
            for iteration in range(1, schedule.count + 1):
                self._sleep(sleep_seconds)
                t1 = self._clock()
                elapsed = t1 - previous
                previous = t1

                began = time.perf_counter()
                snapshot = self._builder.build(t1)
                self._renderer.render(snapshot)
                self._samples += 1

                if logger.isEnabledFor(logging.DEBUG):
                    self._log_iteration(iteration, elapsed, time.perf_counter() - began)

                if deadline is not None and t1 > deadline:
                    logger.debug("period deadline passed after %d sample(s)", iteration)
                    break
        except KeyboardInterrupt:
            logger.info("interrupted after %d sample(s)", self._samples)
        finally:
            self._state = SamplerState.DONE

        self._renderer.finish()
        return self._samples

    def _log_iteration(self, iteration: int, elapsed: float, cost: float) -> None:
        """Log drift and the sampler's own cost for one iteration."""
        cost_us = cost * MICROS_PER_SECOND
        process = psutil.Process()
        with process.oneshot():
            rss = process.memory_info().rss
            cpu = process.cpu_times()
        logger.debug(
            "sample %d: elapsed %.6fs, processing %.0fus, self rss %d bytes, cpu %.2fs",
            iteration,
            elapsed,
            cost_us,
            rss,
            cpu.user + cpu.system,
        )
