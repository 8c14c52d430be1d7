"""The global and interrupt descriptor tables and the PIC remapping."""

from __future__ import annotations

import struct
from collections.abc import Sequence
from dataclasses import dataclass

from kernelsim.common import IoPorts
from kernelsim.isr import InterruptTable

GDT_ENTRIES = 5
IDT_ENTRIES = 256
HANDLER_COUNT = 48
KERNEL_CODE_SELECTOR = 0x08
INTERRUPT_GATE_FLAGS = 0x8E

_GDT_FORMAT = struct.Struct("<HHBBBB")
_IDT_FORMAT = struct.Struct("<HHBBH")
_POINTER_FORMAT = struct.Struct("<HI")

# (base, limit, access, granularity) of the flat segments.
_SEGMENTS = (
    (0, 0, 0, 0),                  # null segment
    (0, 0xFFFFFFFF, 0x9A, 0xCF),   # kernel code
    (0, 0xFFFFFFFF, 0x92, 0xCF),   # kernel data
    (0, 0xFFFFFFFF, 0xFA, 0xCF),   # user code
    (0, 0xFFFFFFFF, 0xF2, 0xCF),   # user data
)

_PIC_REMAP = (
    (0x20, 0x11), (0xA0, 0x11),
    (0x21, 0x20), (0xA1, 0x28),
    (0x21, 0x04), (0xA1, 0x02),
    (0x21, 0x01), (0xA1, 0x01),
    (0x21, 0x00), (0xA1, 0x00),
)


@dataclass
class GdtEntry:
    """One segment descriptor."""

    limit_low: int = 0
    base_low: int = 0
    base_middle: int = 0
    access: int = 0
    granularity: int = 0
    base_high: int = 0

    def pack(self) -> bytes:
        """The 8-byte packed descriptor."""
        return _GDT_FORMAT.pack(
            self.limit_low, self.base_low, self.base_middle,
            self.access, self.granularity, self.base_high,
        )


@dataclass
class IdtEntry:
    """One interrupt gate."""

    base_lo: int = 0
    sel: int = 0
    always0: int = 0
    flags: int = 0
    base_hi: int = 0

    def pack(self) -> bytes:
        """The 8-byte packed gate."""
        return _IDT_FORMAT.pack(self.base_lo, self.sel, self.always0, self.flags, self.base_hi)


@dataclass
class DescriptorPointer:
    """The limit/base pair loaded by lgdt and lidt."""

    limit: int = 0
    base: int = 0

    def pack(self) -> bytes:
        """The 6-byte packed pointer."""
        return _POINTER_FORMAT.pack(self.limit, self.base)


def gdt_entry(base: int, limit: int, access: int, gran: int) -> GdtEntry:
    """Build a segment descriptor from a base, a limit and flag bytes."""
    return GdtEntry(
        limit_low=limit & 0xFFFF,
        base_low=base & 0xFFFF,
        base_middle=(base >> 16) & 0xFF,
        access=access & 0xFF,
        granularity=((limit >> 16) & 0x0F) | (gran & 0xF0),
        base_high=(base >> 24) & 0xFF,
    )


def idt_entry(base: int, sel: int, flags: int) -> IdtEntry:
    """Build an interrupt gate pointing at base."""
    return IdtEntry(
        base_lo=base & 0xFFFF,
        sel=sel & 0xFFFF,
        always0=0,
        flags=flags & 0xFF,
        base_hi=(base >> 16) & 0xFFFF,
    )


def remap_pic(ports: IoPorts) -> None:
    """Move IRQs 0-15 to vectors 32-47 and unmask them all."""
    for port, value in _PIC_REMAP:
        ports.outb(port, value)


class DescriptorTables:
    """Builds the GDT and IDT and resets the interrupt handlers."""

    def __init__(
        self,
        ports: IoPorts | None = None,
        interrupts: InterruptTable | None = None,
        gdt_base: int = 0,
        idt_base: int = 0,
    ) -> None:
        if ports is None:
            ports = interrupts.ports if interrupts is not None else IoPorts()
        self.ports = ports
        self.interrupts = interrupts
        self.gdt_base = gdt_base
        self.idt_base = idt_base
        self.gdt: list[GdtEntry] = [GdtEntry() for _ in range(GDT_ENTRIES)]
        self.idt: list[IdtEntry] = [IdtEntry() for _ in range(IDT_ENTRIES)]
        self.gdt_ptr = DescriptorPointer()
        self.idt_ptr = DescriptorPointer()

    def init(self, handler_addresses: Sequence[int]) -> None:
        """Fill both tables; handler_addresses are isr0-31 then irq0-15."""
        addresses = list(handler_addresses)
        if len(addresses) != HANDLER_COUNT:
            raise ValueError(f"expected {HANDLER_COUNT} handler addresses, got {len(addresses)}")

        self.gdt = [gdt_entry(*segment) for segment in _SEGMENTS]
        self.gdt_ptr = DescriptorPointer(_GDT_FORMAT.size * GDT_ENTRIES - 1, self.gdt_base)

        self.idt = [IdtEntry() for _ in range(IDT_ENTRIES)]
        self.idt_ptr = DescriptorPointer(_IDT_FORMAT.size * IDT_ENTRIES - 1, self.idt_base)
        remap_pic(self.ports)
        for vector, address in enumerate(addresses):
            self.idt[vector] = idt_entry(address, KERNEL_CODE_SELECTOR, INTERRUPT_GATE_FLAGS)

        if self.interrupts is not None:
            self.interrupts.clear()