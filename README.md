# kernelsim

kernelsim models a small 32-bit teaching kernel in plain Python. Every part
keeps its state in ordinary Python objects, so you can drive it step by step
and inspect the result.

## What is in it

- `kernelsim.common`: `KernelPanic` and `KernelAssertionError`, and the
  helpers `panic`, `panic_assert` and `kassert` that raise them. It also has
  `strcmp`, `IoPorts` and `Memory`. `IoPorts` is a recording stand-in for x86
  port I/O, with `outb`, `inb` and `inw`. `Memory` is a sparse, zero-filled
  32-bit memory, with `read`, `write`, `read_u8`, `write_u8`, `read_u32`,
  `write_u32`, `memcpy` and `memset`.
- `kernelsim.ordered_array.OrderedArray`: a fixed-capacity array that stays
  sorted by a less-than predicate. It has `insert`, `lookup` and `remove`.
- `kernelsim.monitor.Monitor`: an 80x25 VGA text screen with a cursor.
  - It handles backspace, tab, carriage return, newline and scrolling.
  - It writes the hardware cursor position to ports `0x3D4` and `0x3D5`.
  - `write_hex` and `write_dec` print numbers.
  - `cell`, `row_text` and `text` read the screen back.
- `kernelsim.isr`: `Registers` and `InterruptTable`. The table holds one
  handler per vector. `isr_handler` reports vectors that have no handler.
  `irq_handler` sends end-of-interrupt bytes to the PIC ports before it
  dispatches.
- `kernelsim.timer`: `pit_divisor` and `Timer`. `Timer.init(frequency)`
  registers a tick handler on IRQ0 and programs the PIT divisor. Each tick
  increments `Timer.tick` and prints `Tick: N`.
- `kernelsim.descriptor_tables`: `gdt_entry`, `idt_entry` and `remap_pic`.
  `GdtEntry`, `IdtEntry` and `DescriptorPointer` each have a `pack` method.
  `DescriptorTables.init` fills the GDT with the flat segments and fills the
  IDT from 48 handler addresses.
- `kernelsim.paging`: `Page` (`to_int` and `from_int`), `PageTable`,
  `PageDirectory.get_page`, `FrameAllocator`, `format_page_fault` and
  `page_fault`.
- `kernelsim.kheap`: `Heap` and `KernelMemory`.
  - `Heap` is a kernel heap of headed and footed blocks in `Memory`, with
    `alloc`, `free` and `holes`. It keeps an ordered index of holes. It
    splits holes and joins free neighbours. It grows and shrinks by mapping
    and unmapping pages.
  - `KernelMemory` has the placement allocator: `kmalloc`, `kmalloc_a`,
    `kmalloc_p`, `kmalloc_ap` and `kmalloc_int`. It also has `kfree`.
    `initialise_paging` builds the kernel page directory, identity-maps used
    memory and creates the kernel heap.
- `kernelsim.fs`: `NodeType`, `Dirent` and `FsNode`. `FsNode` has `read`,
  `write`, `open`, `close`, `readdir` and `finddir`, each of which calls the
  callback the file system supplied.
- `kernelsim.initrd`: `InitrdFileHeader`, `parse_headers`, `Initrd` and
  `initialise_initrd`. These parse and mount a ramdisk image. The mounted
  ramdisk is a root directory with a `dev` directory and a flat list of
  files.
- `kernelsim.make_initrd`: `build_initrd`, `write_initrd` and `main`. These
  build ramdisk images.
- `kernelsim.kernel`: `Multiboot`, `list_filesystem`, `boot` and `main`.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Building a ramdisk

Pass the tool pairs of arguments. Each pair is a host file and the name that
file gets inside the ramdisk:

```
kernelsim-make-initrd test.txt test.txt test2.txt test2.txt
```

The tool writes `./initrd.img` and prints the size of a file header. It then
prints the offset in the image of each file. If a source file is missing, it
prints `Error: file not found: ...` and exits with status 1. A ramdisk holds
at most 64 files, and each name can be at most 63 bytes.

## Booting

```
kernelsim-boot initrd.img
```

The kernel goes through these steps:

1. It sets up the descriptor tables and clears the screen.
2. It reads the multiboot information, which names the ramdisk as a boot
   module.
3. It starts paging and creates the kernel heap.
4. It mounts the ramdisk and lists every entry of its root.

For a file, the listing shows up to 256 bytes of contents. For a directory,
it prints `(directory)` instead. The command prints the final screen to
standard output, with trailing blanks removed.

## Using the pieces

```python
from kernelsim.make_initrd import build_initrd
from kernelsim.kernel import boot

image = build_initrd([("hello.txt", b"Hello, world!")])
screen = boot(image)
print(screen.text())
```

`build_initrd` returns the image bytes. `boot` returns the `Monitor` that the
kernel wrote to. `list_filesystem(root, monitor)` lists any directory node
onto a monitor.

## What it does not do

Nothing here runs on a real machine or raises real interrupts. Handlers run
only when you call `isr_handler` or `irq_handler` yourself. Port writes are
only recorded in `IoPorts.writes`, and the screen exists only as the
`Monitor`'s cells. `boot` does not start the timer, so no ticks happen during
a boot. The ramdisk is read-only: its nodes have no write callback, so
`FsNode.write` on them returns 0.