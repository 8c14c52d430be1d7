"""Page entries, page tables, page directories and the physical frame bitmap."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field

from kernelsim.common import PAGE_SIZE, panic
from kernelsim.isr import Registers
from kernelsim.monitor import Monitor

ENTRIES_PER_TABLE = 1024
PAGE_TABLE_SIZE = ENTRIES_PER_TABLE * 4
PAGE_DIRECTORY_SIZE = ENTRIES_PER_TABLE * 4 * 2 + 4
TABLE_PRESENT_RW_USER = 0x7
MEMORY_SIZE = 0x1000000  # assume 16MB of physical memory
BITS_PER_WORD = 32
FULL_WORD = 0xFFFFFFFF

FAULT_PRESENT = 0x1
FAULT_WRITE = 0x2
FAULT_USER = 0x4
FAULT_RESERVED = 0x8
FAULT_FETCH = 0x10

# (field, bit offset, width) of a page table entry.
_PAGE_FIELDS = (
    ("present", 0, 1),
    ("rw", 1, 1),
    ("user", 2, 1),
    ("accessed", 3, 1),
    ("dirty", 4, 1),
    ("unused", 5, 7),
    ("frame", 12, 20),
)

TableAllocator = Callable[[int], "tuple[int, int]"]


def _panic_here(message: str) -> None:
    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    panic(message, __file__, caller.f_lineno if caller is not None else 0)


@dataclass
class Page:
    """One page table entry."""

    present: int = 0
    rw: int = 0
    user: int = 0
    accessed: int = 0
    dirty: int = 0
    unused: int = 0
    frame: int = 0

    def to_int(self) -> int:
        """Pack the entry into its 32-bit hardware form."""
        value = 0
        for name, shift, width in _PAGE_FIELDS:
            value |= (getattr(self, name) & ((1 << width) - 1)) << shift
        return value

    @classmethod
    def from_int(cls, value: int) -> Page:
        """Unpack a 32-bit hardware entry."""
        return cls(**{
            name: (value >> shift) & ((1 << width) - 1)
            for name, shift, width in _PAGE_FIELDS
        })


@dataclass
class PageTable:
    """A table of 1024 page entries, living at a virtual address."""

    address: int = 0
    pages: list[Page] = field(default_factory=lambda: [Page() for _ in range(ENTRIES_PER_TABLE)])


@dataclass
class PageDirectory:
    """1024 page tables together with their physical addresses."""

    address: int = 0
    tables: list[PageTable | None] = field(default_factory=lambda: [None] * ENTRIES_PER_TABLE)
    tables_physical: list[int] = field(default_factory=lambda: [0] * ENTRIES_PER_TABLE)
    physical_addr: int = 0

    def get_page(
        self,
        address: int,
        make: bool = False,
        allocate: TableAllocator | None = None,
    ) -> Page | None:
        """Return the entry mapping address, creating its table if make is set.

        allocate(size) must return a page-aligned (virtual, physical) pair for
        a new table; it is only called when a table has to be created.
        """
        page_no = (address & 0xFFFFFFFF) // PAGE_SIZE
        table_idx, slot = divmod(page_no, ENTRIES_PER_TABLE)
        table = self.tables[table_idx]
        if table is None:
            if not make:
                return None
            if allocate is None:
                raise ValueError("a page table must be created but no allocator was given")
            table_address, physical = allocate(PAGE_TABLE_SIZE)
            table = PageTable(address=table_address)
            self.tables[table_idx] = table
            self.tables_physical[table_idx] = (physical | TABLE_PRESENT_RW_USER) & 0xFFFFFFFF
        return table.pages[slot]


class FrameAllocator:
    """A bitmap of physical frames, used or free."""

    def __init__(self, nframes: int = MEMORY_SIZE // PAGE_SIZE) -> None:
        if nframes < 0:
            raise ValueError("nframes must not be negative")
        self.nframes = nframes
        self.frames = [0] * -(-nframes // BITS_PER_WORD)

    @staticmethod
    def _locate(frame_addr: int) -> tuple[int, int]:
        return divmod(frame_addr // PAGE_SIZE, BITS_PER_WORD)

    def set_frame(self, frame_addr: int) -> None:
        """Mark the frame holding frame_addr as used."""
        idx, off = self._locate(frame_addr)
        self.frames[idx] |= 1 << off

    def clear_frame(self, frame_addr: int) -> None:
        """Mark the frame holding frame_addr as free."""
        idx, off = self._locate(frame_addr)
        self.frames[idx] &= ~(1 << off) & FULL_WORD

    def test_frame(self, frame_addr: int) -> bool:
        """Whether the frame holding frame_addr is used."""
        idx, off = self._locate(frame_addr)
        return bool(self.frames[idx] & (1 << off))

    def first_frame(self) -> int | None:
        """Index of the first free frame among the whole words, or None."""
        for i, word in enumerate(self.frames[:self.nframes // BITS_PER_WORD]):
            if word == FULL_WORD:
                continue
            for j in range(BITS_PER_WORD):
                if not word & (1 << j):
                    return i * BITS_PER_WORD + j
        return None

    def alloc_frame(self, page: Page, is_kernel: bool, is_writeable: bool) -> None:
        """Back page with a free frame unless it already has one."""
        if page.frame != 0:
            return
        idx = self.first_frame()
        if idx is None:
            _panic_here("No free frames!")
        self.set_frame(idx * PAGE_SIZE)
        page.present = 1
        page.rw = 1 if is_writeable else 0
        page.user = 0 if is_kernel else 1
        page.frame = idx

    def free_frame(self, page: Page) -> None:
        """Release the frame behind page."""
        frame = page.frame
        if not frame:
            return
        # The entry's frame number is passed where an address is expected.
        self.clear_frame(frame)
        page.frame = 0


def format_page_fault(err_code: int, faulting_address: int) -> str:
    """The message printed for a page fault."""
    parts = ["Page fault! ( "]
    if not err_code & FAULT_PRESENT:
        parts.append("present ")
    if err_code & FAULT_WRITE:
        parts.append("read-only ")
    if err_code & FAULT_USER:
        parts.append("user-mode ")
    if err_code & FAULT_RESERVED:
        parts.append("reserved ")
    parts.append(") at 0x")
    parts.append("0x" + format(faulting_address & 0xFFFFFFFF, "x"))
    parts.append("\n")
    return "".join(parts)


def page_fault(regs: Registers, faulting_address: int, monitor: Monitor) -> None:
    """Report a page fault on the monitor and panic."""
    monitor.write(format_page_fault(regs.err_code, faulting_address))
    _panic_here("Page fault")