"""The programmable interval timer and its tick counter."""

from __future__ import annotations

from kernelsim.isr import IRQ0, InterruptTable, Registers

PIT_FREQUENCY = 1193180
PIT_COMMAND_PORT = 0x43
PIT_CHANNEL0_PORT = 0x40
PIT_REPEATING_MODE = 0x36


def pit_divisor(frequency: int) -> int:
    """The value the PIT divides its input clock by to reach frequency."""
    if frequency <= 0:
        raise ValueError("frequency must be positive")
    return (PIT_FREQUENCY // frequency) & 0xFFFFFFFF


class Timer:
    """Counts timer interrupts and prints each tick."""

    def __init__(self, interrupts: InterruptTable) -> None:
        self.interrupts = interrupts
        self.tick = 0

    def _callback(self, regs: Registers) -> None:
        self.tick += 1
        monitor = self.interrupts.monitor
        monitor.write("Tick: ")
        monitor.write_dec(self.tick)
        monitor.write("\n")

    def init(self, frequency: int) -> None:
        """Register the tick handler and program the PIT for frequency."""
        self.interrupts.register(IRQ0, self._callback)
        divisor = pit_divisor(frequency)
        ports = self.interrupts.ports
        ports.outb(PIT_COMMAND_PORT, PIT_REPEATING_MODE)
        ports.outb(PIT_CHANNEL0_PORT, divisor & 0xFF)
        ports.outb(PIT_CHANNEL0_PORT, (divisor >> 8) & 0xFF)