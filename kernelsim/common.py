"""Shared kernel primitives: panics, assertions, port I/O and a flat memory."""

from __future__ import annotations

import inspect
from collections.abc import Iterator

PAGE_SIZE = 0x1000
ADDRESS_SPACE = 1 << 32


class KernelPanic(Exception):
    """The kernel hit an unrecoverable condition."""

    def __init__(self, message: str, file: str, line: int) -> None:
        self.message = message
        self.file = file
        self.line = line
        super().__init__(f"PANIC({message}) at {file}:{line}")


class KernelAssertionError(AssertionError):
    """A kernel assertion did not hold."""

    def __init__(self, file: str, line: int, desc: str) -> None:
        self.file = file
        self.line = line
        self.desc = desc
        super().__init__(f"ASSERTION-FAILED({desc}) at {file}:{line}")


def panic(message: str, file: str, line: int) -> None:
    """Stop the kernel with a message."""
    raise KernelPanic(message, file, line)


def panic_assert(file: str, line: int, desc: str) -> None:
    """Stop the kernel because an assertion failed."""
    raise KernelAssertionError(file, line, desc)


def kassert(condition: object, desc: str) -> None:
    """Raise KernelAssertionError, located at the caller, unless condition holds."""
    if condition:
        return
    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    if caller is None:
        panic_assert("<unknown>", 0, desc)
    else:
        panic_assert(caller.f_code.co_filename, caller.f_lineno, desc)


def strcmp(str1: str, str2: str) -> int:
    """Return 0 if the NUL-terminated strings are equal, 1 otherwise."""
    first = str1.split("\0", 1)[0]
    second = str2.split("\0", 1)[0]
    return 0 if first == second else 1


class IoPorts:
    """A recording stand-in for the x86 I/O port space."""

    def __init__(self, inputs: dict[int, int] | None = None) -> None:
        self.inputs: dict[int, int] = dict(inputs or {})
        self.writes: list[tuple[int, int]] = []

    def outb(self, port: int, value: int) -> None:
        """Write a byte to a port."""
        self.writes.append((port & 0xFFFF, value & 0xFF))

    def inb(self, port: int) -> int:
        """Read a byte from a port."""
        return self.inputs.get(port & 0xFFFF, 0) & 0xFF

    def inw(self, port: int) -> int:
        """Read a 16-bit word from a port."""
        return self.inputs.get(port & 0xFFFF, 0) & 0xFFFF


class Memory:
    """A sparse, zero-filled 32-bit byte-addressed memory."""

    def __init__(self) -> None:
        self._pages: dict[int, bytearray] = {}

    @staticmethod
    def _check(address: int, length: int) -> None:
        if length < 0:
            raise ValueError(f"negative length {length}")
        if address < 0 or address + length > ADDRESS_SPACE:
            raise ValueError(f"access of {length} bytes at {address:#x} is outside memory")

    @staticmethod
    def _spans(address: int, length: int) -> Iterator[tuple[int, int, int]]:
        while length > 0:
            page_no, start = divmod(address, PAGE_SIZE)
            count = min(PAGE_SIZE - start, length)
            yield page_no, start, start + count
            address += count
            length -= count

    def read(self, address: int, length: int) -> bytes:
        """Return length bytes starting at address."""
        self._check(address, length)
        out = bytearray()
        for page_no, start, end in self._spans(address, length):
            page = self._pages.get(page_no)
            out += page[start:end] if page is not None else bytes(end - start)
        return bytes(out)

    def write(self, address: int, data: bytes) -> None:
        """Store data starting at address."""
        data = bytes(data)
        self._check(address, len(data))
        pos = 0
        for page_no, start, end in self._spans(address, len(data)):
            page = self._pages.setdefault(page_no, bytearray(PAGE_SIZE))
            count = end - start
            page[start:end] = data[pos:pos + count]
            pos += count

    def read_u8(self, address: int) -> int:
        return self.read(address, 1)[0]

    def write_u8(self, address: int, value: int) -> None:
        self.write(address, bytes([value & 0xFF]))

    def read_u32(self, address: int) -> int:
        return int.from_bytes(self.read(address, 4), "little")

    def write_u32(self, address: int, value: int) -> None:
        self.write(address, (value & 0xFFFFFFFF).to_bytes(4, "little"))

    def memcpy(self, dest: int, src: int, length: int) -> None:
        """Copy bytes forward, one at a time in effect, as a naive loop would."""
        self._check(src, length)
        self._check(dest, length)
        if src < dest < src + length:
            step = dest - src
            offset = 0
            while offset < length:
                count = min(step, length - offset)
                self.write(dest + offset, self.read(src + offset, count))
                offset += count
        else:
            self.write(dest, self.read(src, length))

    def memset(self, dest: int, value: int, length: int) -> None:
        """Fill length bytes at dest with value."""
        self._check(dest, length)
        self.write(dest, bytes([value & 0xFF]) * length)