"""Version range resolver — pick one representative range from many.

The ``strict`` narrowing is a subset heuristic, not a true interval
intersection: when two ranges overlap without one containing the other, or
are disjoint, the current candidate is kept unchanged.  The returned range
is therefore not guaranteed to be satisfiable by every demand.
"""

from __future__ import annotations

from typing import Literal

import structlog

from peer_dep_helper import semver

log = structlog.get_logger("peer_dep_helper.engine")

Strategy = Literal["strict", "compatible", "latest"]
STRATEGIES: tuple[str, ...] = ("strict", "compatible", "latest")


def _is_subset(sub: str, sup: str) -> bool:
    try:
        return semver.subset(sub, sup)
    except semver.InvalidRangeError:
        return False


def _intersects(a: str, b: str) -> bool:
    try:
        return semver.intersects(a, b)
    except semver.InvalidRangeError:
        return False


def narrow(ranges: list[str]) -> str:
    """Walk *ranges* keeping the most restrictive one seen by subset comparison."""
    candidate = ranges[0]
    for current in ranges[1:]:
        if _is_subset(current, candidate):
            candidate = current
        # candidate already inside current, or incomparable: keep candidate
    return candidate


def resolve_range(
    ranges: list[str],
    strategy: str,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> str | None:
    """Reduce *ranges* to a single range according to *strategy*."""
    if not ranges:
        return None

    if strategy == "latest":
        (logger or log).warning(
            "resolver.latest_strategy_placeholder",
            detail="latest requires a registry lookup; returning the first range",
            range=ranges[0],
        )
        return ranges[0]

    if strategy == "strict":
        return narrow(ranges)

    if strategy == "compatible":
        first = ranges[0]
        if all(_intersects(first, other) for other in ranges[1:]):
            return first
        return narrow(ranges)

    return ranges[0]
