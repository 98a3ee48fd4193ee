"""Tests for grid placement validation and sibling ordering."""

import pytest

from pagecraft.lib.errors import InvalidError
from pagecraft.lib.grid import (
    ORDER_STEP,
    GridPlacement,
    append_order,
    plan_insert,
    spaced_orders,
    validate_order,
    validate_placement,
)


class TestValidatePlacement:
    def test_defaults_are_valid(self):
        placement = GridPlacement()
        assert validate_placement(placement) is placement

    def test_zero_column_and_row_allowed(self):
        validate_placement(GridPlacement(column=0, row=0))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"column": -1},
            {"row": -1},
            {"column_span": 0},
            {"row_span": 0},
            {"column_span": -3},
        ],
    )
    def test_out_of_bounds_rejected(self, kwargs):
        with pytest.raises(InvalidError):
            validate_placement(GridPlacement(**kwargs))

    def test_non_integer_rejected(self):
        with pytest.raises(InvalidError):
            validate_placement(GridPlacement(column="2"))

    def test_bool_is_not_an_integer(self):
        with pytest.raises(InvalidError):
            validate_placement(GridPlacement(column_span=True))

    def test_overlap_is_not_checked(self):
        """Two siblings may occupy the same cells."""
        a = GridPlacement(column=1, column_span=6)
        b = GridPlacement(column=3, column_span=6)
        validate_placement(a)
        validate_placement(b)

    def test_as_columns(self):
        assert GridPlacement(column=2, column_span=4, row=3, row_span=2).as_columns() == {
            "grid_column": 2,
            "grid_column_span": 4,
            "grid_row": 3,
            "grid_row_span": 2,
        }


class TestOrders:
    def test_validate_order(self):
        assert validate_order(-5) == -5
        with pytest.raises(InvalidError):
            validate_order(1.5)
        with pytest.raises(InvalidError):
            validate_order(False)

    def test_spaced_orders(self):
        assert spaced_orders(3) == [0, ORDER_STEP, 2 * ORDER_STEP]
        assert spaced_orders(0) == []
        assert spaced_orders(2, step=10) == [0, 10]

    def test_append_order(self):
        assert append_order([]) == 0
        assert append_order([5, 3], step=10) == 15


class TestPlanInsert:
    def test_empty_sibling_set(self):
        assert plan_insert([], 0).order == 0

    def test_before_first(self):
        plan = plan_insert([0, 1024], 0)
        assert plan.order == -1024
        assert plan.renumbered is None

    def test_after_last(self):
        plan = plan_insert([0, 1024], 2)
        assert plan.order == 2048
        assert plan.renumbered is None

    def test_midpoint(self):
        plan = plan_insert([0, 1024], 1)
        assert plan.order == 512
        assert plan.renumbered is None

    def test_midpoint_with_gap_of_two(self):
        assert plan_insert([4, 6], 1).order == 5

    def test_index_is_clamped(self):
        assert plan_insert([0, 10], 99, step=10).order == 20
        assert plan_insert([0, 10], -4, step=10).order == -10

    def test_collision_renumbers_everything(self):
        plan = plan_insert([0, 1, 2], 1, step=100)
        assert plan.order == 100
        assert plan.renumbered == [0, 200, 300]

    def test_equal_orders_collide(self):
        plan = plan_insert([7, 7], 1, step=10)
        assert plan.renumbered == [0, 20]
        assert plan.order == 10

    def test_bad_index(self):
        with pytest.raises(InvalidError):
            plan_insert([0], "1")
