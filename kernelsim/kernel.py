"""Kernel entry: boot with a ramdisk module and list its contents."""

from __future__ import annotations

import argparse
import struct
import sys
from collections.abc import Sequence
from dataclasses import astuple, dataclass
from pathlib import Path

from kernelsim.common import IoPorts, Memory, kassert
from kernelsim.descriptor_tables import HANDLER_COUNT, DescriptorTables
from kernelsim.fs import TYPE_MASK, FsNode, NodeType
from kernelsim.initrd import initialise_initrd
from kernelsim.isr import InterruptTable
from kernelsim.kheap import DEFAULT_PLACEMENT, KernelMemory
from kernelsim.monitor import Monitor

MULTIBOOT_FLAG_MEM = 0x001
MULTIBOOT_FLAG_DEVICE = 0x002
MULTIBOOT_FLAG_CMDLINE = 0x004
MULTIBOOT_FLAG_MODS = 0x008
MULTIBOOT_FLAG_AOUT = 0x010
MULTIBOOT_FLAG_ELF = 0x020
MULTIBOOT_FLAG_MMAP = 0x040
MULTIBOOT_FLAG_CONFIG = 0x080
MULTIBOOT_FLAG_LOADER = 0x100
MULTIBOOT_FLAG_APM = 0x200
MULTIBOOT_FLAG_VBE = 0x400

_MULTIBOOT = struct.Struct("<24I")
_MODULE_ENTRY = struct.Struct("<II")
MULTIBOOT_SIZE = _MULTIBOOT.size
READ_BUFFER_SIZE = 256

MULTIBOOT_ADDRESS = 0x9000
MODULE_LIST_ADDRESS = 0xA000
INITRD_ADDRESS = DEFAULT_PLACEMENT  # the loader puts modules just past the kernel
_STUB_BASE = 0xFF000
_STUB_STRIDE = 0x10
_STUB_ADDRESSES = [_STUB_BASE + i * _STUB_STRIDE for i in range(HANDLER_COUNT)]


@dataclass
class Multiboot:
    """The information block a multiboot loader hands to the kernel."""

    flags: int = 0
    mem_lower: int = 0
    mem_upper: int = 0
    boot_device: int = 0
    cmdline: int = 0
    mods_count: int = 0
    mods_addr: int = 0
    num: int = 0
    size: int = 0
    addr: int = 0
    shndx: int = 0
    mmap_length: int = 0
    mmap_addr: int = 0
    drives_length: int = 0
    drives_addr: int = 0
    config_table: int = 0
    boot_loader_name: int = 0
    apm_table: int = 0
    vbe_control_info: int = 0
    vbe_mode_info: int = 0
    vbe_mode: int = 0
    vbe_interface_seg: int = 0
    vbe_interface_off: int = 0
    vbe_interface_len: int = 0

    @classmethod
    def unpack(cls, data: bytes) -> Multiboot:
        """Read the packed structure from the start of data."""
        if len(data) < MULTIBOOT_SIZE:
            raise ValueError(f"multiboot information needs {MULTIBOOT_SIZE} bytes, got {len(data)}")
        return cls(*_MULTIBOOT.unpack_from(data, 0))

    def pack(self) -> bytes:
        """The packed structure."""
        return _MULTIBOOT.pack(*(value & 0xFFFFFFFF for value in astuple(self)))


def list_filesystem(root: FsNode, monitor: Monitor) -> None:
    """Print each entry of root, with the contents of every file."""
    index = 0
    while (entry := root.readdir(index)) is not None:
        monitor.write("Found file ")
        monitor.write(entry.name)
        node = root.finddir(entry.name)
        kassert(node is not None, "fsnode")
        if (node.flags & TYPE_MASK) == NodeType.DIRECTORY:
            monitor.write("\n\t(directory)\n")
        else:
            monitor.write('\n\t contents: "')
            for byte in node.read(0, READ_BUFFER_SIZE):
                monitor.put(byte)
            monitor.write('"\n')
        index += 1


def _kernel_main(memory: Memory, mboot_address: int) -> Monitor:
    ports = IoPorts()
    monitor = Monitor(ports)
    interrupts = InterruptTable(monitor, ports)
    DescriptorTables(ports, interrupts).init(_STUB_ADDRESSES)
    monitor.clear()

    mboot = Multiboot.unpack(memory.read(mboot_address, MULTIBOOT_SIZE))
    kassert(mboot.mods_count > 0, "mboot_ptr->mods_count > 0")
    initrd_location = memory.read_u32(mboot.mods_addr)
    initrd_end = memory.read_u32(mboot.mods_addr + 4)

    # Placement allocations start past the module so they do not overwrite it.
    kernel_memory = KernelMemory(memory, placement_address=initrd_end)
    kernel_memory.initialise_paging(interrupts)

    root = initialise_initrd(memory.read(initrd_location, initrd_end - initrd_location))
    list_filesystem(root, monitor)
    return monitor


def boot(initrd_image: bytes) -> Monitor:
    """Load the image as a boot module, run the kernel and return its screen."""
    image = bytes(initrd_image)
    memory = Memory()
    memory.write(INITRD_ADDRESS, image)
    memory.write(MODULE_LIST_ADDRESS, _MODULE_ENTRY.pack(INITRD_ADDRESS, INITRD_ADDRESS + len(image)))
    info = Multiboot(flags=MULTIBOOT_FLAG_MODS, mods_count=1, mods_addr=MODULE_LIST_ADDRESS)
    memory.write(MULTIBOOT_ADDRESS, info.pack())
    return _kernel_main(memory, MULTIBOOT_ADDRESS)


def main(argv: Sequence[str] | None = None) -> int:
    """Boot with a ramdisk image file and print the resulting screen."""
    parser = argparse.ArgumentParser(description="Boot the kernel with an initial ramdisk.")
    parser.add_argument("initrd", help="ramdisk image file")
    args = parser.parse_args(argv)
    monitor = boot(Path(args.initrd).read_bytes())
    print(monitor.text())
    return 0


if __name__ == "__main__":
    sys.exit(main())