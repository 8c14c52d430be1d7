"""Interrupt service routine and IRQ dispatch."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from kernelsim.common import IoPorts
from kernelsim.monitor import Monitor

IRQ0 = 32
IRQ1 = 33
IRQ2 = 34
IRQ3 = 35
IRQ4 = 36
IRQ5 = 37
IRQ6 = 38
IRQ7 = 39
IRQ8 = 40
IRQ9 = 41
IRQ10 = 42
IRQ11 = 43
IRQ12 = 44
IRQ13 = 45
IRQ14 = 46
IRQ15 = 47

INTERRUPT_COUNT = 256
MASTER_PIC_COMMAND = 0x20
SLAVE_PIC_COMMAND = 0xA0
PIC_EOI = 0x20


@dataclass
class Registers:
    """The register state pushed by an interrupt stub."""

    ds: int = 0
    edi: int = 0
    esi: int = 0
    ebp: int = 0
    esp: int = 0
    ebx: int = 0
    edx: int = 0
    ecx: int = 0
    eax: int = 0
    int_no: int = 0
    err_code: int = 0
    eip: int = 0
    cs: int = 0
    eflags: int = 0
    useresp: int = 0
    ss: int = 0


Handler = Callable[[Registers], None]


class InterruptTable:
    """Holds one optional handler per interrupt vector and dispatches to them."""

    def __init__(self, monitor: Monitor | None = None, ports: IoPorts | None = None) -> None:
        if ports is None:
            ports = monitor.ports if monitor is not None else IoPorts()
        self.ports = ports
        self.monitor = monitor if monitor is not None else Monitor(ports)
        self._handlers: list[Handler | None] = [None] * INTERRUPT_COUNT

    def register(self, n: int, handler: Handler | None) -> None:
        """Install handler for vector n; None removes it."""
        if not 0 <= n < INTERRUPT_COUNT:
            raise ValueError(f"interrupt vector {n} out of range")
        self._handlers[n] = handler

    def clear(self) -> None:
        """Remove every handler."""
        self._handlers = [None] * INTERRUPT_COUNT

    def isr_handler(self, regs: Registers) -> None:
        """Dispatch a CPU exception, reporting it if nothing handles it."""
        handler = self._handlers[regs.int_no]
        if handler is not None:
            handler(regs)
        else:
            self.monitor.write("unhandled interrupt: ")
            self.monitor.write_dec(regs.int_no)
            self.monitor.put("\n")

    def irq_handler(self, regs: Registers) -> None:
        """Acknowledge a hardware interrupt at the PICs, then dispatch it."""
        if regs.int_no >= IRQ8:
            self.ports.outb(SLAVE_PIC_COMMAND, PIC_EOI)
        self.ports.outb(MASTER_PIC_COMMAND, PIC_EOI)
        handler = self._handlers[regs.int_no]
        if handler is not None:
            handler(regs)