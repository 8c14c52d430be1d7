"""An 80x25 VGA text-mode screen."""

from __future__ import annotations

from kernelsim.common import IoPorts

WIDTH = 80
HEIGHT = 25
BACKGROUND = 0  # black
FOREGROUND = 15  # white
ATTRIBUTE = ((BACKGROUND << 4) | (FOREGROUND & 0x0F)) << 8
BLANK = 0x20 | ATTRIBUTE
CURSOR_INDEX_PORT = 0x3D4
CURSOR_DATA_PORT = 0x3D5
CURSOR_HIGH = 14
CURSOR_LOW = 15


class Monitor:
    """Text screen with a cursor, scrolling and a hardware cursor on I/O ports."""

    def __init__(self, ports: IoPorts | None = None) -> None:
        self.ports = ports if ports is not None else IoPorts()
        self.cells = [BLANK] * (WIDTH * HEIGHT)
        self.cursor_x = 0
        self.cursor_y = 0

    def _move_cursor(self) -> None:
        location = (self.cursor_y * WIDTH + self.cursor_x) & 0xFFFF
        self.ports.outb(CURSOR_INDEX_PORT, CURSOR_HIGH)
        self.ports.outb(CURSOR_DATA_PORT, location >> 8)
        self.ports.outb(CURSOR_INDEX_PORT, CURSOR_LOW)
        self.ports.outb(CURSOR_DATA_PORT, location)

    def _scroll(self) -> None:
        if self.cursor_y >= HEIGHT:
            self.cells = self.cells[WIDTH:HEIGHT * WIDTH] + [BLANK] * WIDTH
            self.cursor_y = HEIGHT - 1

    def put(self, c: str | int) -> None:
        """Write one character, handling backspace, tab, CR and LF."""
        code = (ord(c) if isinstance(c, str) else c) & 0xFF
        if code >= 0x80:
            code -= 0x100  # characters are signed bytes
        if code == 0x08 and self.cursor_x:
            self.cursor_x -= 1
        elif code == 0x09:
            self.cursor_x = (self.cursor_x + 8) & ~7
        elif code == 0x0D:
            self.cursor_x = 0
        elif code == 0x0A:
            self.cursor_x = 0
            self.cursor_y += 1
        elif code >= 0x20:
            self.cells[self.cursor_y * WIDTH + self.cursor_x] = code | ATTRIBUTE
            self.cursor_x += 1

        if self.cursor_x >= WIDTH:
            self.cursor_x = 0
            self.cursor_y += 1

        self._scroll()
        self._move_cursor()

    def clear(self) -> None:
        """Blank the screen and home the cursor."""
        self.cells = [BLANK] * (WIDTH * HEIGHT)
        self.cursor_x = 0
        self.cursor_y = 0
        self._move_cursor()

    def write(self, text: str) -> None:
        """Write a string, stopping at a NUL character."""
        for ch in text:
            if ch == "\0":
                break
            self.put(ch)

    def write_hex(self, n: int) -> None:
        """Write n as 0x followed by lower-case hex digits without leading zeros."""
        self.write("0x" + format(n & 0xFFFFFFFF, "x"))

    def write_dec(self, n: int) -> None:
        """Write n in decimal."""
        n &= 0xFFFFFFFF
        if n == 0:
            self.put("0")
            return
        # The digit accumulator is a signed 32-bit value: large numbers print nothing.
        if n >= 0x80000000:
            return
        self.write(str(n))

    def cell(self, row: int, col: int) -> int:
        """Return the 16-bit character/attribute word at a position."""
        if not (0 <= row < HEIGHT and 0 <= col < WIDTH):
            raise IndexError(f"no cell at row {row}, column {col}")
        return self.cells[row * WIDTH + col]

    def row_text(self, row: int) -> str:
        """Return the characters of one row, all 80 of them."""
        if not 0 <= row < HEIGHT:
            raise IndexError(f"no row {row}")
        return "".join(chr(word & 0xFF) for word in self.cells[row * WIDTH:(row + 1) * WIDTH])

    def text(self) -> str:
        """Return the screen contents with trailing blanks removed."""
        return "\n".join(self.row_text(row).rstrip() for row in range(HEIGHT)).rstrip("\n")