"""Table construction and the physical-adjacency graph.

Rectangle seats are numbered by a single clockwise walk of the perimeter::

    top     left -> right
    right   top -> bottom
    bottom  right -> left
    left    bottom -> top

so opposite sides run in opposite directions: ``top[i]`` faces
``bottom[top - 1 - i]`` and ``left[i]`` faces ``right[left - 1 - i]``.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence, Union

from shapely.geometry import LineString, Point, Polygon as ShapelyPolygon, box

from .models import AdjacencyType, RectangleSeats, RectangleSide, Seat, SeatMode, Table, TableShape

log = logging.getLogger(__name__)

SEAT_RADIUS = 12.0
ROUND_BASE_RADIUS = 60.0
RECT_MIN_SEAT_SPACING = 40.0
RECT_PADDING = 30.0
RECT_MIN_WIDTH = 160.0
RECT_MIN_HEIGHT = 100.0

_SIDES = (RectangleSide.top, RectangleSide.right, RectangleSide.bottom, RectangleSide.left)
_OPPOSITE = {
    RectangleSide.top: RectangleSide.bottom,
    RectangleSide.bottom: RectangleSide.top,
    RectangleSide.left: RectangleSide.right,
    RectangleSide.right: RectangleSide.left,
}

ModeLike = Union[SeatMode, str]


class GeometryError(ValueError):
    pass


def seat_id_for(table_id: str, position: int) -> str:
    return f"{table_id}-seat-{position + 1}"


def _seat_number(ordering: Optional[Sequence[int]], i: int) -> int:
    if ordering is not None and i < len(ordering) and ordering[i] is not None:
        return int(ordering[i])
    return i + 1


def _seat_mode(modes: Optional[Sequence[ModeLike]], i: int) -> SeatMode:
    if modes is not None and i < len(modes) and modes[i]:
        return SeatMode(modes[i])
    return SeatMode.default


# ----------------------------- round tables -----------------------------


def round_neighbor_positions(position: int, seat_count: int) -> list[int]:
    if seat_count < 2:
        return []
    prev_pos = (position - 1 + seat_count) % seat_count
    next_pos = (position + 1) % seat_count
    return sorted({prev_pos, next_pos} - {position})


def create_round_table(
    table_id: str,
    seat_count: int,
    *,
    label: Optional[str] = None,
    seat_ordering: Optional[Sequence[int]] = None,
    seat_modes: Optional[Sequence[ModeLike]] = None,
    center: tuple[float, float] = (0.0, 0.0),
) -> Table:
    if seat_count < 0:
        raise GeometryError(f"seat_count must be >= 0, got {seat_count}")

    cx, cy = center
    table_radius = max(ROUND_BASE_RADIUS, ROUND_BASE_RADIUS * math.sqrt(seat_count / 8))
    seat_distance = table_radius + max(30.0, 20.0 + seat_count / 2)

    seats: list[Seat] = []
    for i in range(seat_count):
        # start at the top, clockwise in screen coordinates
        angle = (i / seat_count) * 2 * math.pi - math.pi / 2
        number = _seat_number(seat_ordering, i)
        seats.append(
            Seat(
                id=seat_id_for(table_id, i),
                position=i,
                seat_number=number,
                label=str(number),
                mode=_seat_mode(seat_modes, i),
                adjacent_seats=[seat_id_for(table_id, p) for p in round_neighbor_positions(i, seat_count)],
                x=cx + math.cos(angle) * seat_distance,
                y=cy + math.sin(angle) * seat_distance,
            )
        )

    return Table(
        id=table_id,
        label=label if label is not None else table_id,
        shape=TableShape.round,
        seats=seats,
        x=cx,
        y=cy,
        radius=table_radius,
    )


# ----------------------------- rectangle sides -----------------------------


def side_start(side: RectangleSide, config: RectangleSeats) -> int:
    if side == RectangleSide.top:
        return 0
    if side == RectangleSide.right:
        return config.top
    if side == RectangleSide.bottom:
        return config.top + config.right
    return config.top + config.right + config.bottom


def seat_side(position: int, config: RectangleSeats) -> Optional[RectangleSide]:
    for side in _SIDES:
        start = side_start(side, config)
        if start <= position < start + config.count(side):
            return side
    return None


def index_in_side(position: int, config: RectangleSeats) -> int:
    side = seat_side(position, config)
    if side is None:
        return -1
    return position - side_start(side, config)


def same_side_neighbors(position: int, config: RectangleSeats) -> list[int]:
    """Neighbours on the same side only; no wraparound across a corner."""
    side = seat_side(position, config)
    if side is None:
        return []
    idx = index_in_side(position, config)
    out = []
    if idx > 0:
        out.append(position - 1)
    if idx < config.count(side) - 1:
        out.append(position + 1)
    return out


def opposite_position(position: int, config: RectangleSeats) -> Optional[int]:
    side = seat_side(position, config)
    if side is None:
        return None
    other = _OPPOSITE[side]
    count = config.count(side)
    if count != config.count(other):
        return None
    idx = index_in_side(position, config)
    return side_start(other, config) + (count - 1 - idx)


def edge_positions(position: int, config: RectangleSeats) -> list[int]:
    """Corner links from the first/last seat of a side to the nearest seat of the perpendicular side."""
    side = seat_side(position, config)
    if side is None:
        return []
    idx = index_in_side(position, config)
    last = config.count(side) - 1
    t, r, b, l = config.top, config.right, config.bottom, config.left

    out: list[int] = []
    if side == RectangleSide.top:
        if idx == 0 and l > 0:
            out.append(t + r + b + l - 1)
        if idx == last and r > 0:
            out.append(t)
    elif side == RectangleSide.right:
        if idx == 0 and t > 0:
            out.append(t - 1)
        if idx == last and b > 0:
            out.append(t + r)
    elif side == RectangleSide.bottom:
        if idx == 0 and r > 0:
            out.append(t + r - 1)
        if idx == last and l > 0:
            out.append(t + r + b)
    else:
        if idx == 0 and b > 0:
            out.append(t + r + b - 1)
        if idx == last and t > 0:
            out.append(0)
    return out


def adjacent_positions(position: int, config: RectangleSeats) -> list[int]:
    found = set(same_side_neighbors(position, config))
    opp = opposite_position(position, config)
    if opp is not None:
        found.add(opp)
    found.update(edge_positions(position, config))
    found.discard(position)
    return sorted(found)


def _rectangle_dimensions(config: RectangleSeats) -> tuple[float, float]:
    horizontal = max(config.top, config.bottom)
    vertical = max(config.left, config.right)
    width = max(RECT_MIN_WIDTH, horizontal * RECT_MIN_SEAT_SPACING + 2 * RECT_PADDING) if horizontal else RECT_MIN_WIDTH
    height = max(RECT_MIN_HEIGHT, vertical * RECT_MIN_SEAT_SPACING + 2 * RECT_PADDING) if vertical else RECT_MIN_HEIGHT
    return width, height


def _side_line(side: RectangleSide, footprint: ShapelyPolygon, offset: float) -> LineString:
    # Each line runs in the side's traversal direction, pushed out from the table edge.
    min_x, min_y, max_x, max_y = footprint.bounds
    if side == RectangleSide.top:
        return LineString([(min_x, min_y - offset), (max_x, min_y - offset)])
    if side == RectangleSide.right:
        return LineString([(max_x + offset, min_y), (max_x + offset, max_y)])
    if side == RectangleSide.bottom:
        return LineString([(max_x, max_y + offset), (min_x, max_y + offset)])
    return LineString([(min_x - offset, max_y), (min_x - offset, min_y)])


def create_rectangle_table(
    table_id: str,
    top: int,
    right: int,
    bottom: int,
    left: int,
    *,
    label: Optional[str] = None,
    seat_ordering: Optional[Sequence[int]] = None,
    seat_modes: Optional[Sequence[ModeLike]] = None,
    center: tuple[float, float] = (0.0, 0.0),
) -> Table:
    if min(top, right, bottom, left) < 0:
        raise GeometryError(f"side seat counts must be >= 0, got top={top} right={right} bottom={bottom} left={left}")

    config = RectangleSeats(top=top, right=right, bottom=bottom, left=left)
    cx, cy = center
    width, height = _rectangle_dimensions(config)
    footprint = box(cx - width / 2, cy - height / 2, cx + width / 2, cy + height / 2)
    seat_offset = SEAT_RADIUS * 2.5

    seats: list[Seat] = []
    for side in _SIDES:
        count = config.count(side)
        if count == 0:
            continue
        line = _side_line(side, footprint, seat_offset)
        spacing = line.length / (count + 1)
        for i in range(count):
            position = len(seats)
            pt = line.interpolate(spacing * (i + 1))
            number = _seat_number(seat_ordering, position)
            seats.append(
                Seat(
                    id=seat_id_for(table_id, position),
                    position=position,
                    seat_number=number,
                    label=str(number),
                    mode=_seat_mode(seat_modes, position),
                    x=pt.x,
                    y=pt.y,
                )
            )

    for seat in seats:
        seat.adjacent_seats = [seat_id_for(table_id, p) for p in adjacent_positions(seat.position, config)]

    return Table(
        id=table_id,
        label=label if label is not None else table_id,
        shape=TableShape.rectangle,
        seats=seats,
        rectangle_seats=config,
        x=cx,
        y=cy,
        width=width,
        height=height,
    )


# ----------------------------- whole-table helpers -----------------------------


def table_footprint(table: Table) -> ShapelyPolygon:
    if table.shape == TableShape.rectangle:
        w = table.width or RECT_MIN_WIDTH
        h = table.height or RECT_MIN_HEIGHT
        return box(table.x - w / 2, table.y - h / 2, table.x + w / 2, table.y + h / 2)
    return Point(table.x, table.y).buffer(table.radius)


def adjacency_type(table: Table, seat: Seat, other: Seat) -> Optional[AdjacencyType]:
    """How ``other`` relates to ``seat``, or None when they are not adjacent."""
    if other.id not in seat.adjacent_seats:
        return None
    config = table.rectangle_seats
    if table.shape != TableShape.rectangle or config is None:
        return AdjacencyType.side
    if other.position in same_side_neighbors(seat.position, config):
        return AdjacencyType.side
    if opposite_position(seat.position, config) == other.position:
        return AdjacencyType.opposite
    if other.position in edge_positions(seat.position, config):
        return AdjacencyType.edge
    return AdjacencyType.side


def rebuild_adjacency(table: Table) -> Table:
    """Re-derive ``adjacent_seats`` from shape and positions, in place.

    Older saved layouts stored a plain ring for rectangle tables; this brings them
    in line with the side/opposite/corner rules.
    """
    by_position = {s.position: s for s in table.seats}
    if table.shape == TableShape.rectangle and table.rectangle_seats is not None:
        config = table.rectangle_seats
        if config.total != len(table.seats):
            log.warning(
                "table %s declares %d rectangle seats but has %d; adjacency may be partial",
                table.id, config.total, len(table.seats),
            )
        for seat in table.seats:
            seat.adjacent_seats = [by_position[p].id for p in adjacent_positions(seat.position, config) if p in by_position]
    else:
        n = len(table.seats)
        for seat in table.seats:
            seat.adjacent_seats = [by_position[p].id for p in round_neighbor_positions(seat.position, n) if p in by_position]
    return table


def is_symmetric(table: Table) -> bool:
    ids = {s.id: s for s in table.seats}
    for seat in table.seats:
        for other_id in seat.adjacent_seats:
            other = ids.get(other_id)
            if other is None or seat.id not in other.adjacent_seats:
                return False
    return True
