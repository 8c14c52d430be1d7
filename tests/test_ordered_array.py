import pytest
from hypothesis import given, strategies as st

from kernelsim.common import KernelAssertionError
from kernelsim.ordered_array import OrderedArray, standard_less_than


def test_standard_less_than():
    assert standard_less_than(1, 2)
    assert not standard_less_than(2, 2)


@given(st.lists(st.integers(), max_size=50))
def test_insert_keeps_sorted(values):
    array = OrderedArray(64)
    for value in values:
        array.insert(value)
    assert list(array) == sorted(values)
    assert len(array) == len(values)


def test_custom_predicate_and_equal_items_go_first():
    array = OrderedArray(8, lambda a, b: a[0] < b[0])
    array.insert((1, "a"))
    array.insert((0, "z"))
    array.insert((1, "b"))
    assert list(array) == [(0, "z"), (1, "b"), (1, "a")]


def test_lookup_and_remove():
    array = OrderedArray(8)
    for value in (5, 3, 9):
        array.insert(value)
    assert array.lookup(0) == 3
    array.remove(0)
    assert list(array) == [5, 9]
    assert array.lookup(1) == 9


def test_lookup_out_of_range_asserts():
    array = OrderedArray(4)
    array.insert(1)
    with pytest.raises(KernelAssertionError):
        array.lookup(1)
    with pytest.raises(KernelAssertionError):
        array.remove(3)


def test_insert_without_predicate_asserts():
    array = OrderedArray(4, None)
    with pytest.raises(KernelAssertionError):
        array.insert(1)


def test_full_array_overflows():
    array = OrderedArray(2)
    array.insert(1)
    array.insert(2)
    with pytest.raises(OverflowError):
        array.insert(3)
    assert list(array) == [1, 2]


def test_negative_capacity_rejected():
    with pytest.raises(ValueError):
        OrderedArray(-1)