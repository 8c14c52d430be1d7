import pytest

from kernelsim.common import IoPorts
from kernelsim.isr import IRQ0, IRQ8, IRQ15, InterruptTable, Registers
from kernelsim.monitor import Monitor


def test_irq_vectors_split_between_master_and_slave():
    assert (IRQ0, IRQ8, IRQ15) == (32, 40, 47)
    ports = IoPorts()
    table = InterruptTable(ports=ports)
    table.irq_handler(Registers(int_no=IRQ8 - 1))
    assert ports.writes == [(0x20, 0x20)]
    table.irq_handler(Registers(int_no=IRQ15))
    assert ports.writes == [(0x20, 0x20), (0xA0, 0x20), (0x20, 0x20)]


def test_registered_handler_receives_registers():
    table = InterruptTable()
    seen = []
    table.register(3, seen.append)
    regs = Registers(int_no=3, err_code=9)
    table.isr_handler(regs)
    assert seen == [regs]


def test_unhandled_interrupt_is_reported():
    monitor = Monitor()
    table = InterruptTable(monitor)
    table.isr_handler(Registers(int_no=14))
    assert monitor.text() == "unhandled interrupt: 14"
    assert monitor.cursor_y == 1


def test_irq_from_master_sends_one_eoi():
    ports = IoPorts()
    table = InterruptTable(ports=ports)
    table.irq_handler(Registers(int_no=IRQ0))
    assert ports.writes == [(0x20, 0x20)]


def test_irq_from_slave_sends_two_eois():
    ports = IoPorts()
    table = InterruptTable(ports=ports)
    seen = []
    table.register(IRQ8, lambda regs: seen.append(regs.int_no))
    table.irq_handler(Registers(int_no=IRQ8))
    assert ports.writes == [(0xA0, 0x20), (0x20, 0x20)]
    assert seen == [IRQ8]


def test_unhandled_irq_is_silent():
    monitor = Monitor()
    table = InterruptTable(monitor)
    table.irq_handler(Registers(int_no=IRQ0 + 1))
    assert monitor.text() == ""


def test_clear_removes_handlers():
    monitor = Monitor()
    table = InterruptTable(monitor)
    calls = []
    table.register(5, calls.append)
    table.clear()
    table.isr_handler(Registers(int_no=5))
    assert calls == []
    assert monitor.text().startswith("unhandled interrupt: ")


def test_register_rejects_bad_vector():
    table = InterruptTable()
    with pytest.raises(ValueError):
        table.register(256, lambda regs: None)


def test_shares_monitor_ports():
    monitor = Monitor()
    table = InterruptTable(monitor)
    assert table.ports is monitor.ports