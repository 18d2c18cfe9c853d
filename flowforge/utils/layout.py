from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from flowforge.core.config import settings
from flowforge.data.models import Handle


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class NodeFootprint:
    width: float
    height: float
    gap: float

    @classmethod
    def from_settings(cls) -> "NodeFootprint":
        return cls(width=settings.node_width, height=settings.node_height, gap=settings.node_gap)


_OPPOSITE_HANDLES = {
    Handle.top: Handle.bottom,
    Handle.bottom: Handle.top,
    Handle.right: Handle.left,
    Handle.left: Handle.right,
}


def compute_radial_position(
    anchor: Position,
    existing_child_count: int,
    footprint: Optional[NodeFootprint] = None,
) -> Position:
    """Place the Nth child of ``anchor`` on a 90 degree step around it.

    The angle cycles every four children, so later children can overlap earlier
    ones; positions are only a starting point the user can drag away from.
    """
    footprint = footprint or NodeFootprint.from_settings()
    angle = (existing_child_count * 90) % 360
    radians = math.radians(angle)
    x = anchor.x + math.cos(radians) * (footprint.width + footprint.gap)
    y = anchor.y + math.sin(radians) * (footprint.height + footprint.gap)
    return Position(x=x, y=y)


def compute_directional_position(
    parent: Position,
    direction: Handle | str,
    footprint: Optional[NodeFootprint] = None,
) -> Position:
    """Offset a new node from ``parent`` along the compass ``direction``."""
    footprint = footprint or NodeFootprint.from_settings()
    direction = Handle(direction)
    if direction == Handle.bottom:
        return Position(x=parent.x, y=parent.y + footprint.height + footprint.gap)
    if direction == Handle.right:
        return Position(x=parent.x + footprint.width + footprint.gap, y=parent.y)
    if direction == Handle.left:
        return Position(x=parent.x - footprint.width - footprint.gap, y=parent.y)
    return Position(x=parent.x, y=parent.y - footprint.height - footprint.gap)


def opposite_handle(direction: Handle | str) -> Handle:
    return _OPPOSITE_HANDLES[Handle(direction)]
