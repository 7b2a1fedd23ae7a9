"""Readers for the kernel memory interfaces."""

import logging
import re

from memsampler.models import AccountingPolicy, InterfaceUnavailable, Topology

logger = logging.getLogger(__name__)

FLAT_PATTERN = re.compile(r"^([^:\s]+):\s+(\d+)")
NODE_PATTERN = re.compile(r"^Node\s+(\d+)\s+([^:\s]+):\s+(\d+)")
PHYSICAL_ID_PATTERN = re.compile(r"^physical id\s*:\s*(\d+)")

STRICT_OVERCOMMIT = "2"

# NUL, ESC, form-feed, carriage-return, bell
_CONTROL_CHARS = str.maketrans("", "", "\x00\x1b\x0c\r\x07")


def clean_line(line: str) -> str:
    """Strip the control characters kernel text may carry."""
    return line.translate(_CONTROL_CHARS)


def parse_flat_line(line: str) -> tuple[str, int] | None:
    """Parse ``<key>: <value>`` into a pair, or None if it does not match."""
    match = FLAT_PATTERN.match(clean_line(line))
    if match is None:
        return None
    return match.group(1), int(match.group(2))


def parse_node_line(line: str) -> tuple[int, str, int] | None:
    """Parse ``Node <id> <key>: <value>`` into a triple, or None."""
    match = NODE_PATTERN.match(clean_line(line))
    if match is None:
        return None
    return int(match.group(1)), match.group(2), int(match.group(3))


def _read_lines(path: str) -> list[str]:
    """Read a whole interface file, releasing it before returning."""
    try:
        with open(path, encoding="ascii", errors="replace") as f:
            return f.readlines()
    except OSError as e:
        raise InterfaceUnavailable(path, e.strerror or str(e)) from e


def read_flat(path: str) -> dict[str, int]:
    """
    Read a flat ``key: value`` interface such as /proc/meminfo.

    Lines that do not match are skipped.

    Raises:
        InterfaceUnavailable: If the file cannot be opened.
    """
    metrics: dict[str, int] = {}
    for line in _read_lines(path):
        parsed = parse_flat_line(line)
        if parsed is None:
            logger.debug("skipping unmatched line in %s: %r", path, line)
            continue
        key, value = parsed
        metrics[key] = value
    return metrics


def read_node_scoped(path: str) -> dict[int, dict[str, int]]:
    """
    Read a ``Node <id> key: value`` interface such as a node's meminfo.

    Raises:
        InterfaceUnavailable: If the file cannot be opened.
    """
    metrics: dict[int, dict[str, int]] = {}
    for line in _read_lines(path):
        parsed = parse_node_line(line)
        if parsed is None:
            logger.debug("skipping unmatched line in %s: %r", path, line)
            continue
        node_id, key, value = parsed
        metrics.setdefault(node_id, {})[key] = value
    return metrics


def resolve_policy(path: str) -> AccountingPolicy:
    """Read the overcommit switch. Mode 2 is strict, anything else heuristic."""
    lines = _read_lines(path)
    value = clean_line(lines[0]).strip() if lines else ""
    policy = AccountingPolicy.STRICT if value == STRICT_OVERCOMMIT else AccountingPolicy.HEURISTIC
    logger.debug("overcommit mode %r -> %s accounting", value, policy.value)
    return policy


def discover_topology(path: str) -> Topology:
    """
    Count distinct ``physical id`` values in the CPU description.

    Socket count is used as the NUMA node count. The two differ on hosts
    with sub-NUMA clustering; such hosts get per-socket rather than
    per-node columns. A host without the field reports zero nodes.
    """
    sockets: set[int] = set()
    for line in _read_lines(path):
        match = PHYSICAL_ID_PATTERN.match(clean_line(line))
        if match is not None:
            sockets.add(int(match.group(1)))
    logger.debug("discovered %d node(s) from %s", len(sockets), path)
    return Topology(node_count=len(sockets))
