"""Grid placement and sibling ordering rules.

Placement only has to be within bounds. Siblings are allowed to overlap on
the grid; which one wins visually is up to whatever renders the page.

Sibling order is a sparse integer sequence. Inserting between two siblings
takes the midpoint of their orders, inserting at either end steps past the
extreme value, and only when two neighbours leave no integer between them is
the whole sibling set respaced.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from pagecraft.lib.errors import InvalidError

ORDER_STEP = 1024


@dataclass(frozen=True)
class GridPlacement:
    """Position of a component on its parent's grid."""

    column: int = 1
    column_span: int = 12
    row: int = 1
    row_span: int = 1

    def as_columns(self) -> dict[str, int]:
        """Map to the PageComponent column names."""
        return {
            "grid_column": self.column,
            "grid_column_span": self.column_span,
            "grid_row": self.row,
            "grid_row_span": self.row_span,
        }


def validate_placement(placement: GridPlacement) -> GridPlacement:
    """Reject out-of-bounds placement values.

    Raises:
        InvalidError: for a negative column/row or a span below one
    """
    for field_name in ("column", "column_span", "row", "row_span"):
        value = getattr(placement, field_name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidError(f"{field_name} must be an integer", field=field_name)

    if placement.column < 0:
        raise InvalidError("column must be >= 0", field="column")
    if placement.row < 0:
        raise InvalidError("row must be >= 0", field="row")
    if placement.column_span < 1:
        raise InvalidError("column_span must be >= 1", field="column_span")
    if placement.row_span < 1:
        raise InvalidError("row_span must be >= 1", field="row_span")
    return placement


def validate_order(order) -> int:
    """Sort orders are plain integers; anything else is invalid."""
    if isinstance(order, bool) or not isinstance(order, int):
        raise InvalidError("sort order must be an integer", field="sort_order")
    return order


def spaced_orders(count: int, step: int = ORDER_STEP) -> list[int]:
    """Evenly spaced orders for a sibling set of the given size."""
    return [i * step for i in range(count)]


def append_order(orders: Sequence[int], step: int = ORDER_STEP) -> int:
    """Order for a node appended after every existing sibling."""
    if not orders:
        return 0
    return max(orders) + step


@dataclass(frozen=True)
class InsertPlan:
    """Result of placing a node among ordered siblings.

    ``renumbered`` is None when only the inserted node needs an order. When
    neighbours collided it holds the new order of every existing sibling, in
    the same sequence as the input.
    """

    order: int
    renumbered: list[int] | None = None


def plan_insert(orders: Sequence[int], index: int, step: int = ORDER_STEP) -> InsertPlan:
    """Compute the order for a node inserted at ``index`` among siblings.

    Args:
        orders: current sibling orders, already sorted in display order
        index: target position; clamped to ``[0, len(orders)]``
        step: spacing used at the ends and when renumbering

    Returns:
        InsertPlan with the new node's order and, on collision, the
        respaced orders of the existing siblings
    """
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidError("index must be an integer", field="index")

    count = len(orders)
    index = max(0, min(index, count))

    if count == 0:
        return InsertPlan(order=0)
    if index == 0:
        return InsertPlan(order=orders[0] - step)
    if index == count:
        return InsertPlan(order=orders[-1] + step)

    low, high = orders[index - 1], orders[index]
    if high - low >= 2:
        return InsertPlan(order=(low + high) // 2)

    # No integer fits between the neighbours: respace everything
    respaced = spaced_orders(count + 1, step)
    new_order = respaced.pop(index)
    return InsertPlan(order=new_order, renumbered=respaced)
