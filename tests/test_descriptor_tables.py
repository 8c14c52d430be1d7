import pytest
from hypothesis import given, strategies as st

from kernelsim.common import IoPorts
from kernelsim.descriptor_tables import (
    DescriptorPointer,
    DescriptorTables,
    GdtEntry,
    IdtEntry,
    gdt_entry,
    idt_entry,
    remap_pic,
)
from kernelsim.isr import InterruptTable, Registers

u32 = st.integers(min_value=0, max_value=0xFFFFFFFF)
u8 = st.integers(min_value=0, max_value=0xFF)


def test_code_segment_bytes():
    assert gdt_entry(0, 0xFFFFFFFF, 0x9A, 0xCF).pack() == bytes(
        [0xFF, 0xFF, 0x00, 0x00, 0x00, 0x9A, 0xCF, 0x00]
    )


@given(u32, u32, u8, u8)
def test_gdt_entry_keeps_base_and_limit(base, limit, access, gran):
    entry = gdt_entry(base, limit, access, gran)
    assert entry.base_low | entry.base_middle << 16 | entry.base_high << 24 == base
    assert entry.limit_low | (entry.granularity & 0x0F) << 16 == limit & 0xFFFFF
    assert entry.granularity & 0xF0 == gran & 0xF0
    assert entry.access == access
    assert len(entry.pack()) == 8


@given(u32, st.integers(min_value=0, max_value=0xFFFF), u8)
def test_idt_entry_keeps_base(base, sel, flags):
    entry = idt_entry(base, sel, flags)
    assert entry.base_lo | entry.base_hi << 16 == base
    assert (entry.sel, entry.flags, entry.always0) == (sel, flags, 0)
    packed = entry.pack()
    assert len(packed) == 8
    assert int.from_bytes(packed[0:2], "little") | int.from_bytes(packed[6:8], "little") << 16 == base


def test_pointer_pack_layout():
    packed = DescriptorPointer(limit=0x27, base=0x12345678).pack()
    assert len(packed) == 6
    assert int.from_bytes(packed[:2], "little") == 0x27
    assert int.from_bytes(packed[2:], "little") == 0x12345678


def test_remap_pic_writes_sequence():
    ports = IoPorts()
    remap_pic(ports)
    assert ports.writes == [
        (0x20, 0x11), (0xA0, 0x11), (0x21, 0x20), (0xA1, 0x28), (0x21, 0x04),
        (0xA1, 0x02), (0x21, 0x01), (0xA1, 0x01), (0x21, 0x00), (0xA1, 0x00),
    ]


def _addresses():
    return [0x100000 + 0x10 * n for n in range(48)]


def test_init_builds_gdt():
    tables = DescriptorTables(gdt_base=0x2000)
    tables.init(_addresses())
    assert tables.gdt[0] == GdtEntry()
    assert [entry.access for entry in tables.gdt[1:]] == [0x9A, 0x92, 0xFA, 0xF2]
    assert tables.gdt_ptr.base == 0x2000
    assert tables.gdt_ptr.limit == len(b"".join(e.pack() for e in tables.gdt)) - 1


def test_init_builds_idt():
    tables = DescriptorTables(idt_base=0x3000)
    addresses = _addresses()
    tables.init(addresses)
    for vector, address in enumerate(addresses):
        gate = tables.idt[vector]
        assert gate.base_lo | gate.base_hi << 16 == address
        assert (gate.sel, gate.flags) == (0x08, 0x8E)
    assert all(gate == IdtEntry() for gate in tables.idt[48:])
    assert tables.idt_ptr.base == 0x3000
    assert tables.idt_ptr.limit == len(b"".join(g.pack() for g in tables.idt)) - 1


def test_init_remaps_pic_on_given_ports():
    ports = IoPorts()
    DescriptorTables(ports=ports).init(_addresses())
    expected = IoPorts()
    remap_pic(expected)
    assert ports.writes == expected.writes


def test_init_clears_interrupt_handlers():
    interrupts = InterruptTable()
    seen = []
    interrupts.register(3, seen.append)
    DescriptorTables(interrupts=interrupts).init(_addresses())
    interrupts.isr_handler(Registers(int_no=3))
    assert seen == []
    assert "unhandled interrupt: 3" in interrupts.monitor.text()


def test_init_rejects_wrong_handler_count():
    with pytest.raises(ValueError):
        DescriptorTables().init([0] * 47)