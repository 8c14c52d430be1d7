"""The virtual file system node interface."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum

TYPE_MASK = 0x7


class NodeType(IntEnum):
    """Node type values stored in the low bits of FsNode.flags."""

    FILE = 0x01
    DIRECTORY = 0x02
    CHARDEVICE = 0x03
    BLOCKDEVICE = 0x04
    PIPE = 0x05
    SYMLINK = 0x06
    MOUNTPOINT = 0x08  # an active mountpoint; combined with a type


@dataclass
class Dirent:
    """One directory entry."""

    name: str
    ino: int = 0


ReadCallback = Callable[["FsNode", int, int], bytes]
WriteCallback = Callable[["FsNode", int, bytes], int]
OpenCallback = Callable[["FsNode"], None]
CloseCallback = Callable[["FsNode"], None]
ReaddirCallback = Callable[["FsNode", int], "Dirent | None"]
FinddirCallback = Callable[["FsNode", str], "FsNode | None"]


@dataclass(eq=False)
class FsNode:
    """A file system node whose operations are supplied by its file system."""

    name: str = ""
    mask: int = 0
    uid: int = 0
    gid: int = 0
    flags: int = 0
    inode: int = 0
    length: int = 0
    impl: int = 0
    on_read: ReadCallback | None = None
    on_write: WriteCallback | None = None
    on_open: OpenCallback | None = None
    on_close: CloseCallback | None = None
    on_readdir: ReaddirCallback | None = None
    on_finddir: FinddirCallback | None = None
    ptr: FsNode | None = None

    def _is_directory(self) -> bool:
        return (self.flags & TYPE_MASK) == NodeType.DIRECTORY

    def read(self, offset: int, size: int) -> bytes:
        """Read up to size bytes at offset; nothing if the node cannot be read."""
        if self.on_read is None:
            return b""
        return self.on_read(self, offset, size)

    def write(self, offset: int, data: bytes) -> int:
        """Write data at offset and return the count written; 0 if not writable."""
        if self.on_write is None:
            return 0
        return self.on_write(self, offset, bytes(data))

    def open(self, read: bool = True, write: bool = False) -> None:
        """Open the node."""
        if self.on_open is not None:
            self.on_open(self)

    def close(self) -> None:
        """Close the node."""
        if self.on_close is not None:
            self.on_close(self)

    def readdir(self, index: int) -> Dirent | None:
        """Return the index-th entry of a directory, or None."""
        if self._is_directory() and self.on_readdir is not None:
            return self.on_readdir(self, index)
        return None

    def finddir(self, name: str) -> FsNode | None:
        """Return the child node called name, or None."""
        if self._is_directory() and self.on_finddir is not None:
            return self.on_finddir(self, name)
        return None