"""A simulated teaching kernel: text screen, interrupts, paging, kernel heap and a ramdisk file system."""

__version__ = "0.1.0"