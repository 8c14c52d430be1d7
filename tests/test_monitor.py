import pytest
from hypothesis import given, strategies as st

from kernelsim.common import IoPorts
from kernelsim.monitor import ATTRIBUTE, BLANK, HEIGHT, WIDTH, Monitor


def test_write_places_characters_with_attribute():
    monitor = Monitor()
    monitor.write("hi")
    assert monitor.cell(0, 0) == ord("h") | ATTRIBUTE
    assert monitor.cell(0, 1) == ord("i") | ATTRIBUTE
    assert (monitor.cursor_x, monitor.cursor_y) == (2, 0)


def test_blank_is_white_space_on_black():
    monitor = Monitor()
    monitor.write("x")
    monitor.clear()
    assert monitor.cell(0, 0) == BLANK == 0x0F20


def test_clear_moves_hardware_cursor_home():
    ports = IoPorts()
    monitor = Monitor(ports)
    monitor.write("abc")
    monitor.clear()
    assert ports.writes[-4:] == [(0x3D4, 14), (0x3D5, 0), (0x3D4, 15), (0x3D5, 0)]
    assert monitor.text() == ""


def test_hardware_cursor_follows_position():
    ports = IoPorts()
    monitor = Monitor(ports)
    monitor.write("\nab")
    location = monitor.cursor_y * WIDTH + monitor.cursor_x
    assert ports.writes[-3][1] == location >> 8
    assert ports.writes[-1][1] == location & 0xFF


def test_newline_and_carriage_return():
    monitor = Monitor()
    monitor.write("abc\rX\nyz")
    assert monitor.row_text(0).rstrip() == "Xbc"
    assert monitor.row_text(1).rstrip() == "yz"


def test_tab_moves_to_multiple_of_eight():
    monitor = Monitor()
    monitor.write("abc\t")
    assert monitor.cursor_x % 8 == 0
    assert monitor.cursor_x > 3


def test_backspace():
    monitor = Monitor()
    monitor.put("\b")
    assert monitor.cursor_x == 0
    monitor.write("ab\b")
    assert monitor.cursor_x == 1
    assert monitor.row_text(0).rstrip() == "ab"


def test_wrap_at_end_of_line():
    monitor = Monitor()
    monitor.write("x" * WIDTH)
    assert (monitor.cursor_x, monitor.cursor_y) == (0, 1)


def test_scroll_keeps_cursor_on_last_line():
    monitor = Monitor()
    for i in range(HEIGHT + 1):
        monitor.write(f"L{i}\n")
    assert monitor.cursor_y == HEIGHT - 1
    assert monitor.row_text(HEIGHT - 2).rstrip() == f"L{HEIGHT}"
    assert monitor.row_text(HEIGHT - 1).strip() == ""
    assert "L0\n" not in monitor.text() + "\n"


def test_high_bytes_are_ignored():
    monitor = Monitor()
    monitor.put("\xe9")
    monitor.put(0x01)
    assert monitor.cursor_x == 0
    assert monitor.text() == ""


def test_write_stops_at_nul():
    monitor = Monitor()
    monitor.write("ab\0cd")
    assert monitor.text() == "ab"


def test_write_hex_zero():
    monitor = Monitor()
    monitor.write_hex(0)
    assert monitor.text() == "0x0"


@given(st.integers(0, 0xFFFFFFFF))
def test_write_hex_round_trip(n):
    monitor = Monitor()
    monitor.write_hex(n)
    text = monitor.text()
    assert text.startswith("0x")
    assert int(text[2:], 16) == n
    assert text == "0x" + text[2:].lower()


@given(st.integers(0, 0x7FFFFFFF))
def test_write_dec_round_trip(n):
    monitor = Monitor()
    monitor.write_dec(n)
    assert int(monitor.text()) == n


def test_write_dec_large_values_print_nothing():
    monitor = Monitor()
    monitor.write_dec(0x80000000)
    assert monitor.text() == ""
    assert monitor.cursor_x == 0


def test_cell_out_of_range():
    monitor = Monitor()
    with pytest.raises(IndexError):
        monitor.cell(HEIGHT, 0)
    with pytest.raises(IndexError):
        monitor.row_text(-1)