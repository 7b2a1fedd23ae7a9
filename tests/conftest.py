"""Shared fixtures: fake kernel interface trees under tmp_path."""

from pathlib import Path

import pytest

from memsampler.models import KernelPaths

SCENARIO_MEMINFO = {
    "MemTotal": 1_000_000,
    "MemFree": 200_000,
    "MemAvailable": 640_000,
    "Buffers": 50_000,
    "Cached": 300_000,
    "SwapCached": 0,
    "Active(anon)": 90_000,
    "AnonPages": 100_000,
    "Slab": 40_000,
    "SReclaimable": 20_000,
    "SUnreclaim": 20_000,
    "Dirty": 1_000,
    "Writeback": 500,
    "CommitLimit": 900_000,
    "Committed_AS": 500_000,
    "HugePages_Total": 20,
    "HugePages_Free": 10,
    "Hugepagesize": 2_048,
}

NODE_MEMINFO = {
    "MemTotal": 500_000,
    "MemFree": 100_000,
    "MemUsed": 400_000,
    "FilePages": 150_000,
    "Slab": 20_000,
    "SReclaimable": 10_000,
    "HugePages_Total": 10,
    "HugePages_Free": 5,
}


def format_meminfo(metrics: dict[str, int]) -> str:
    """Render metrics the way /proc/meminfo lays them out."""
    lines = []
    for key, value in metrics.items():
        suffix = "" if key.startswith("HugePages_") else " kB"
        lines.append(f"{key + ':':<16}{value:>8}{suffix}")
    return "\n".join(lines) + "\n"


def format_node_meminfo(node_id: int, metrics: dict[str, int]) -> str:
    """Render metrics the way a node's meminfo lays them out."""
    lines = []
    for key, value in metrics.items():
        suffix = "" if key.startswith("HugePages_") else " kB"
        lines.append(f"Node {node_id} {key + ':':<16}{value:>8}{suffix}")
    return "\n".join(lines) + "\n"


def format_cpuinfo(sockets: int, cores_per_socket: int = 2) -> str:
    """Render a /proc/cpuinfo with the given number of physical ids."""
    blocks = []
    processor = 0
    for socket in range(sockets):
        for _ in range(cores_per_socket):
            blocks.append(
                f"processor\t: {processor}\n"
                "model name\t: Example CPU\n"
                f"physical id\t: {socket}\n"
                f"core id\t\t: {processor % cores_per_socket}\n"
            )
            processor += 1
    return "\n".join(blocks)


@pytest.fixture
def kernel_tree(tmp_path: Path):
    """Factory writing a fake /proc and /sys tree and returning its paths."""

    def make(
        meminfo: dict[str, int] | None = None,
        sockets: int = 2,
        node_meminfo: dict[str, int] | None = None,
        overcommit: str = "0",
        nodes: int | None = None,
    ) -> KernelPaths:
        paths = KernelPaths.under(str(tmp_path))
        node_count = sockets if nodes is None else nodes

        Path(paths.meminfo).parent.mkdir(parents=True, exist_ok=True)
        Path(paths.meminfo).write_text(format_meminfo(meminfo or SCENARIO_MEMINFO))
        Path(paths.cpuinfo).write_text(format_cpuinfo(sockets))

        Path(paths.overcommit).parent.mkdir(parents=True, exist_ok=True)
        Path(paths.overcommit).write_text(f"{overcommit}\n")

        for node_id in range(node_count):
            node_path = Path(paths.node(node_id))
            node_path.parent.mkdir(parents=True, exist_ok=True)
            node_path.write_text(format_node_meminfo(node_id, node_meminfo or NODE_MEMINFO))

        return paths

    return make
