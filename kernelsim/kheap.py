"""The kernel heap and the placement allocator used before the heap exists."""

from __future__ import annotations

from collections.abc import Callable

from kernelsim.common import PAGE_SIZE, Memory, kassert
from kernelsim.isr import InterruptTable, Registers
from kernelsim.monitor import Monitor
from kernelsim.ordered_array import OrderedArray
from kernelsim.paging import (
    BITS_PER_WORD,
    MEMORY_SIZE,
    PAGE_DIRECTORY_SIZE,
    FrameAllocator,
    PageDirectory,
    page_fault,
)

KHEAP_START = 0xC0000000
KHEAP_INITIAL_SIZE = 0x100000
KHEAP_MAX = 0xCFFFF000

HEAP_INDEX_SIZE = 0x20000
HEAP_MAGIC = 0x123890AB
HEAP_MIN_SIZE = 0x70000

INDEX_ENTRY_SIZE = 4
HEADER_SIZE = 12  # magic, is_hole (padded to 4), size
FOOTER_SIZE = 8  # magic, header address
OVERHEAD = HEADER_SIZE + FOOTER_SIZE
HEAP_STRUCT_SIZE = 32
PAGE_FAULT_VECTOR = 14
PAGE_MASK = 0xFFFFF000
DEFAULT_PLACEMENT = 0x100000

MapPage = Callable[[int, bool, bool], None]
UnmapPage = Callable[[int], None]


def _u32(value: int) -> int:
    return value & 0xFFFFFFFF


def _s32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


class Heap:
    """A first-fit-by-size heap of headed and footed blocks kept in memory.

    Holes are indexed by address in an array sorted by hole size. Growing the
    heap calls map_page(address, is_kernel, is_writeable) for each new page,
    shrinking it calls unmap_page(address) for each released page.
    """

    def __init__(
        self,
        memory: Memory,
        start: int,
        end_address: int,
        max_address: int,
        supervisor: bool = False,
        readonly: bool = False,
        map_page: MapPage | None = None,
        unmap_page: UnmapPage | None = None,
    ) -> None:
        kassert(start % PAGE_SIZE == 0, "start%0x1000 == 0")
        kassert(end_address % PAGE_SIZE == 0, "end_addr%0x1000 == 0")
        self.memory = memory
        self.map_page = map_page
        self.unmap_page = unmap_page

        self.index = OrderedArray(HEAP_INDEX_SIZE, self._smaller)
        memory.memset(start, 0, INDEX_ENTRY_SIZE * HEAP_INDEX_SIZE)
        start = _u32(start + INDEX_ENTRY_SIZE * HEAP_INDEX_SIZE)
        # Only an odd start address gets moved on to the next page.
        if start & 1:
            start = _u32((start & PAGE_MASK) + PAGE_SIZE)

        self.start_address = start
        self.end_address = end_address
        self.max_address = max_address
        self.supervisor = supervisor
        self.readonly = readonly

        self._write_header(start, True, _u32(end_address - start))
        self.index.insert(start)

    # -- block layout -----------------------------------------------------

    def _magic(self, address: int) -> int:
        return self.memory.read_u32(address)

    def _is_hole(self, header: int) -> int:
        return self.memory.read_u8(_u32(header + 4))

    def _set_hole(self, header: int, is_hole: bool) -> None:
        self.memory.write_u8(_u32(header + 4), 1 if is_hole else 0)

    def _size(self, header: int) -> int:
        return self.memory.read_u32(_u32(header + 8))

    def _set_size(self, header: int, size: int) -> None:
        self.memory.write_u32(_u32(header + 8), size)

    def _write_header(self, header: int, is_hole: bool, size: int) -> None:
        self.memory.write_u32(header, HEAP_MAGIC)
        self._set_hole(header, is_hole)
        self._set_size(header, size)

    def _footer_header(self, footer: int) -> int:
        return self.memory.read_u32(_u32(footer + 4))

    def _set_footer_header(self, footer: int, header: int) -> None:
        self.memory.write_u32(_u32(footer + 4), header)

    def _write_footer(self, footer: int, header: int) -> None:
        self.memory.write_u32(footer, HEAP_MAGIC)
        self._set_footer_header(footer, header)

    def _smaller(self, a: int, b: int) -> bool:
        return self._size(a) < self._size(b)

    def _index_position(self, header: int) -> int | None:
        return next((i for i, item in enumerate(self.index) if item == header), None)

    # -- growing and shrinking --------------------------------------------

    def _expand(self, new_size: int) -> None:
        kassert(
            new_size > self.end_address - self.start_address,
            "new_size > heap->end_address - heap->start_address",
        )
        # Rounding up happens only for odd sizes.
        if new_size & 1:
            new_size = _u32((new_size & PAGE_MASK) + PAGE_SIZE)
        kassert(
            _u32(self.start_address + new_size) <= self.max_address,
            "heap->start_address+new_size <= heap->max_address",
        )
        old_size = self.end_address - self.start_address
        if self.map_page is not None:
            for offset in range(old_size, new_size, PAGE_SIZE):
                self.map_page(_u32(self.start_address + offset), self.supervisor, not self.readonly)
        self.end_address = _u32(self.start_address + new_size)

    def _contract(self, new_size: int) -> int:
        kassert(
            new_size < self.end_address - self.start_address,
            "new_size < heap->end_address-heap->start_address",
        )
        if new_size & PAGE_SIZE:
            new_size = (new_size & PAGE_SIZE) + PAGE_SIZE
        new_size = max(new_size, HEAP_MIN_SIZE)

        old_size = self.end_address - self.start_address
        offset = _u32(old_size - PAGE_SIZE)
        while new_size < offset:
            if self.unmap_page is not None:
                self.unmap_page(_u32(self.start_address + offset))
            offset -= PAGE_SIZE
        self.end_address = _u32(self.start_address + new_size)
        return new_size

    def _find_smallest_hole(self, size: int, page_align: bool) -> int | None:
        for position, header in enumerate(self.index):
            if page_align:
                location = _u32(header + HEADER_SIZE)
                offset = PAGE_SIZE - location % PAGE_SIZE if location & 1 else 0
                if _s32(self._size(header)) - offset >= _s32(size):
                    return position
            elif self._size(header) >= size:
                return position
        return None

    def _grow(self, new_size: int) -> None:
        old_length = self.end_address - self.start_address
        old_end = self.end_address
        self._expand(_u32(old_length + new_size))
        added = _u32(self.end_address - self.start_address - old_length)

        endmost = max(self.index, default=None)
        if endmost is None:
            self._write_header(old_end, True, added)
            self._write_footer(_u32(old_end + added - FOOTER_SIZE), old_end)
            self.index.insert(old_end)
        else:
            size = _u32(self._size(endmost) + added)
            self._set_size(endmost, size)
            self._write_footer(_u32(endmost + size - FOOTER_SIZE), endmost)

    # -- public interface -------------------------------------------------

    def alloc(self, size: int, page_align: bool = False) -> int:
        """Allocate size bytes and return the address of the data."""
        size = _u32(size)
        page_align = bool(page_align & 0xFF) if isinstance(page_align, int) else bool(page_align)
        while True:
            new_size = _u32(size + OVERHEAD)
            position = self._find_smallest_hole(new_size, page_align)
            if position is not None:
                break
            self._grow(new_size)

        pos = self.index.lookup(position)
        hole_size = self._size(pos)
        if _u32(hole_size - new_size) < OVERHEAD:
            size = _u32(size + hole_size - new_size)
            new_size = hole_size

        if page_align and pos & PAGE_MASK:
            lead = PAGE_SIZE - (pos & 0xFFF) - HEADER_SIZE
            new_location = _u32(pos + lead)
            self._write_header(pos, True, lead)
            self._write_footer(_u32(new_location - FOOTER_SIZE), pos)
            pos = new_location
            hole_size = _u32(hole_size - lead)
        else:
            self.index.remove(position)

        self._write_header(pos, False, new_size)
        self._write_footer(_u32(pos + HEADER_SIZE + size), pos)

        remainder = _u32(hole_size - new_size)
        if remainder:
            hole = _u32(pos + HEADER_SIZE + size + FOOTER_SIZE)
            self._write_header(hole, True, remainder)
            hole_footer = _u32(hole + remainder - FOOTER_SIZE)
            if hole_footer < self.end_address:
                self._write_footer(hole_footer, hole)
            self.index.insert(hole)

        return _u32(pos + HEADER_SIZE)

    def free(self, address: int) -> None:
        """Release a block returned by alloc, merging it with free neighbours."""
        if address == 0:
            return
        header = _u32(address - HEADER_SIZE)
        footer = _u32(header + self._size(header) - FOOTER_SIZE)
        kassert(self._magic(header) == HEAP_MAGIC, "header->magic == HEAP_MAGIC")
        kassert(self._magic(footer) == HEAP_MAGIC, "footer->magic == HEAP_MAGIC")

        self._set_hole(header, True)
        add = True

        left_footer = _u32(header - FOOTER_SIZE)
        if (self._magic(left_footer) == HEAP_MAGIC
                and self._is_hole(self._footer_header(left_footer)) == 1):
            cached = self._size(header)
            header = self._footer_header(left_footer)
            self._set_footer_header(footer, header)
            self._set_size(header, _u32(self._size(header) + cached))
            add = False

        right_header = _u32(footer + FOOTER_SIZE)
        if self._magic(right_header) == HEAP_MAGIC and self._is_hole(right_header):
            right_size = self._size(right_header)
            self._set_size(header, _u32(self._size(header) + right_size))
            footer = _u32(right_header + right_size - FOOTER_SIZE)
            position = self._index_position(right_header)
            kassert(position is not None, "iterator < heap->index.size")
            self.index.remove(position)

        if _u32(footer + FOOTER_SIZE) == self.end_address:
            old_length = self.end_address - self.start_address
            new_length = self._contract(_u32(header - self.start_address))
            shrink = _u32(old_length - new_length)
            remaining = _u32(self._size(header) - shrink)
            if remaining:
                self._set_size(header, remaining)
                self._write_footer(_u32(header + remaining - FOOTER_SIZE), header)
            else:
                # The search is for the right-hand neighbour, not this block.
                position = self._index_position(right_header)
                if position is not None:
                    self.index.remove(position)

        if add:
            self.index.insert(header)

    def holes(self) -> list[tuple[int, int]]:
        """The indexed holes as (address, size), in index order."""
        return [(header, self._size(header)) for header in self.index]


class KernelMemory:
    """Kernel allocation: a placement allocator, paging set-up and the kernel heap."""

    def __init__(self, memory: Memory | None = None, placement_address: int = DEFAULT_PLACEMENT) -> None:
        self.memory = memory if memory is not None else Memory()
        self.placement_address = placement_address
        self.kheap: Heap | None = None
        self.heap_struct_address: int | None = None
        self.kernel_directory: PageDirectory | None = None
        self.current_directory: PageDirectory | None = None
        self.frames: FrameAllocator | None = None
        self.paging_enabled = False
        self.cr3 = 0
        self.cr2 = 0

    def kmalloc_int(self, size: int, align: bool = False, want_phys: bool = False) -> tuple[int, int | None]:
        """Allocate size bytes; return (address, physical address or None)."""
        if self.kheap is not None:
            address = self.kheap.alloc(size, bool(align))
            phys = None
            if want_phys:
                kassert(self.kernel_directory is not None, "kernel_directory")
                page = self.kernel_directory.get_page(address, False)
                kassert(page is not None, "page")
                # The frame term is masked away together with the high address bits.
                phys = (page.frame * PAGE_SIZE + address) & 0xFFF
            return address, phys

        if align == 1 and self.placement_address & PAGE_MASK:
            self.placement_address = _u32((self.placement_address & PAGE_MASK) + PAGE_SIZE)
        address = self.placement_address
        phys = address if want_phys else None
        self.placement_address = _u32(address + size)
        return address, phys

    def kmalloc(self, size: int) -> int:
        """Allocate size bytes."""
        return self.kmalloc_int(size, False, False)[0]

    def kmalloc_a(self, size: int) -> int:
        """Allocate size page-aligned bytes."""
        return self.kmalloc_int(size, True, False)[0]

    def kmalloc_p(self, size: int) -> tuple[int, int]:
        """Allocate size bytes; return (address, physical address)."""
        address, phys = self.kmalloc_int(size, False, True)
        return address, phys if phys is not None else 0

    def kmalloc_ap(self, size: int) -> tuple[int, int]:
        """Allocate size page-aligned bytes; return (address, physical address)."""
        address, phys = self.kmalloc_int(size, True, True)
        return address, phys if phys is not None else 0

    def kfree(self, address: int) -> None:
        """Release memory obtained from the kernel heap."""
        kassert(self.kheap is not None, "kheap")
        self.kheap.free(address)

    def _allocate_table(self, size: int) -> tuple[int, int]:
        address, phys = self.kmalloc_ap(size)
        self.memory.memset(address, 0, PAGE_SIZE)
        return address, phys

    def _map_heap_page(self, address: int, is_kernel: bool, is_writeable: bool) -> None:
        page = self.kernel_directory.get_page(address, True, self._allocate_table)
        self.frames.alloc_frame(page, is_kernel, is_writeable)

    def _unmap_heap_page(self, address: int) -> None:
        page = self.kernel_directory.get_page(address, False)
        kassert(page is not None, "page")
        self.frames.free_frame(page)

    def _switch_page_directory(self, directory: PageDirectory) -> None:
        self.current_directory = directory
        self.cr3 = _u32(directory.address + 4 * len(directory.tables))
        self.paging_enabled = True

    def _page_fault_handler(self, monitor: Monitor) -> Callable[[Registers], None]:
        def handler(regs: Registers) -> None:
            page_fault(regs, self.cr2, monitor)
        return handler

    def initialise_paging(self, interrupts: InterruptTable | None = None) -> None:
        """Build the kernel page directory, enable paging and create the heap."""
        nframes = MEMORY_SIZE // PAGE_SIZE
        bitmap = self.kmalloc(nframes // BITS_PER_WORD)
        self.memory.memset(bitmap, 0, nframes // BITS_PER_WORD)
        self.frames = FrameAllocator(nframes)

        directory_address = self.kmalloc_a(PAGE_DIRECTORY_SIZE)
        self.memory.memset(directory_address, 0, PAGE_DIRECTORY_SIZE)
        self.kernel_directory = PageDirectory(address=directory_address)
        self.current_directory = self.kernel_directory

        heap_pages = range(KHEAP_START, KHEAP_START + KHEAP_INITIAL_SIZE, PAGE_SIZE)
        for address in heap_pages:
            self.kernel_directory.get_page(address, True, self._allocate_table)

        # placement_address moves while tables are created, so it is re-read each time.
        address = 0
        while address < _u32(self.placement_address + PAGE_SIZE):
            page = self.kernel_directory.get_page(address, True, self._allocate_table)
            self.frames.alloc_frame(page, False, False)
            address += PAGE_SIZE

        for address in heap_pages:
            page = self.kernel_directory.get_page(address, True, self._allocate_table)
            self.frames.alloc_frame(page, False, False)

        if interrupts is not None:
            interrupts.register(PAGE_FAULT_VECTOR, self._page_fault_handler(interrupts.monitor))

        self._switch_page_directory(self.kernel_directory)

        self.heap_struct_address = self.kmalloc(HEAP_STRUCT_SIZE)
        self.kheap = Heap(
            self.memory,
            KHEAP_START,
            KHEAP_START + KHEAP_INITIAL_SIZE,
            KHEAP_MAX,
            supervisor=False,
            readonly=False,
            map_page=self._map_heap_page,
            unmap_page=self._unmap_heap_page,
        )