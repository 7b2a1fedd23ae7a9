"""Fixed-width text report for memsampler."""

import sys
from datetime import datetime
from typing import TextIO

from memsampler.models import AccountingPolicy, MemorySnapshot, SamplerConfig, Topology
from memsampler.units import Unit

HEADER_EVERY = 15
TIME_WIDTH = 23  # YYYY-MM-DD HH:MM:SS.mmm
COLUMN_WIDTH = 11
COMPLETION_MARKER = "Done."

GLOBAL_COLUMNS = (
    "Total",
    "Used",
    "Free",
    "Cached",
    "Buffers",
    "Slab",
    "CommittedAS",
    "CommitLimit",
    "Dirty",
    "Writeback",
    "Anon",
    "Avail",
)


def format_timestamp(timestamp: float) -> str:
    """Format epoch seconds as local time with millisecond precision."""
    moment = datetime.fromtimestamp(timestamp)
    return f"{moment:%Y-%m-%d %H:%M:%S}.{moment.microsecond // 1000:03d}"


def format_value(kib: int, unit: Unit) -> str:
    """Format a KiB quantity in the report unit, one decimal place."""
    return f"{unit.from_kib(kib):>{COLUMN_WIDTH}.1f}"


class ReportRenderer:
    """
    Writes one row per snapshot, repeating the column header every
    HEADER_EVERY rows so it stays on screen during long runs.
    """

    def __init__(
        self,
        topology: Topology,
        unit: Unit = Unit.MIB,
        out: TextIO | None = None,
    ) -> None:
        self._topology = topology
        self._unit = unit
        self._out = out if out is not None else sys.stdout
        self._rows = 0

    @property
    def rows(self) -> int:
        """Number of data rows written."""
        return self._rows

    def header(self) -> str:
        """Column header for the current topology."""
        columns = list(GLOBAL_COLUMNS)
        for node_id in self._topology.node_ids:
            columns.append(f"{node_id}:Avail")
            columns.append(f"{node_id}:HFree")
        cells = " ".join(f"{name:>{COLUMN_WIDTH}}" for name in columns)
        return f"{'Time':<{TIME_WIDTH}} {cells}"

    def format_row(self, snapshot: MemorySnapshot) -> str:
        """Format a snapshot as one report line."""
        cells = [format_value(value, self._unit) for value in snapshot.global_values()]
        for node in sorted(snapshot.nodes, key=lambda n: n.node_id):
            cells.append(format_value(node.avail, self._unit))
            cells.append(format_value(node.huge_free, self._unit))
        return f"{format_timestamp(snapshot.timestamp):<{TIME_WIDTH}} {' '.join(cells)}"

    def render(self, snapshot: MemorySnapshot) -> None:
        """Write a row, preceded by the header on rows 1, 16, 31, ..."""
        self._rows += 1
        if self._rows % HEADER_EVERY == 1:
            self._write(self.header())
        self._write(self.format_row(snapshot))

    def banner(self, config: SamplerConfig, policy: AccountingPolicy) -> None:
        """Write the startup line describing the resolved configuration."""
        schedule = config.schedule
        self._write(
            f"memsampler: delay {schedule.delay:g}s, count {schedule.count}, "
            f"period {schedule.period:g}s, accounting {policy.value}, "
            f"nodes {self._topology.node_count}, unit {self._unit.label}"
        )

    def finish(self) -> None:
        """Write the completion marker."""
        self._write(COMPLETION_MARKER)

    def _write(self, line: str) -> None:
        print(line, file=self._out, flush=True)
