"""The initial ramdisk: a flat file system held in one memory image."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from kernelsim.common import strcmp
from kernelsim.fs import Dirent, FsNode, NodeType

MAX_FILES = 64
NAME_SIZE = 64
FILE_MAGIC = 0xBF

_COUNT = struct.Struct("<I")
_FILE_HEADER = struct.Struct("<B64s3xII")

COUNT_SIZE = _COUNT.size
FILE_HEADER_SIZE = _FILE_HEADER.size
DATA_START = COUNT_SIZE + FILE_HEADER_SIZE * MAX_FILES


@dataclass
class InitrdFileHeader:
    """Where one file lies in the ramdisk image."""

    magic: int = 0
    name: str = ""
    offset: int = 0
    length: int = 0

    def pack(self) -> bytes:
        """The packed header as stored in the image."""
        raw = self.name.encode("utf-8", "surrogateescape")
        if len(raw) >= NAME_SIZE:
            raise ValueError(f"file name {self.name!r} is longer than {NAME_SIZE - 1} bytes")
        return _FILE_HEADER.pack(self.magic & 0xFF, raw, self.offset & 0xFFFFFFFF, self.length & 0xFFFFFFFF)

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0) -> InitrdFileHeader:
        """Read a header from data at offset."""
        magic, raw, file_offset, length = _FILE_HEADER.unpack_from(data, offset)
        name = raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")
        return cls(magic, name, file_offset, length)


def parse_headers(image: bytes) -> list[InitrdFileHeader]:
    """Return the file headers of a ramdisk image."""
    if len(image) < COUNT_SIZE:
        raise ValueError("image too short to hold a file count")
    (nfiles,) = _COUNT.unpack_from(image, 0)
    if COUNT_SIZE + nfiles * FILE_HEADER_SIZE > len(image):
        raise ValueError(f"image too short to hold {nfiles} file headers")
    return [
        InitrdFileHeader.unpack(image, COUNT_SIZE + i * FILE_HEADER_SIZE)
        for i in range(nfiles)
    ]


class Initrd:
    """A mounted ramdisk: a root directory, a dev directory and the files."""

    def __init__(self, image: bytes) -> None:
        self.image = bytes(image)
        self.headers = parse_headers(self.image)
        self.root = FsNode(
            name="initrd",
            flags=NodeType.DIRECTORY,
            on_readdir=self._readdir,
            on_finddir=self._finddir,
        )
        self.dev = FsNode(
            name="dev",
            flags=NodeType.DIRECTORY,
            on_readdir=self._readdir,
            on_finddir=self._finddir,
        )
        self.nodes = [
            FsNode(
                name=header.name,
                length=header.length,
                inode=i,
                flags=NodeType.FILE,
                on_read=self._read,
            )
            for i, header in enumerate(self.headers)
        ]

    def _read(self, node: FsNode, offset: int, size: int) -> bytes:
        if offset < 0 or size < 0:
            raise ValueError("offset and size must not be negative")
        header = self.headers[node.inode]
        if offset > header.length:
            return b""
        if offset + size > header.length:
            size = header.length - offset
        start = header.offset + offset
        return self.image[start:start + size]

    def _readdir(self, node: FsNode, index: int) -> Dirent | None:
        if node is self.root and index == 0:
            return Dirent("dev", 0)
        # The index is unsigned, so index 0 outside the root wraps past the end.
        position = (index - 1) & 0xFFFFFFFF
        if position >= len(self.nodes):
            return None
        entry = self.nodes[position]
        return Dirent(entry.name, entry.inode)

    def _finddir(self, node: FsNode, name: str) -> FsNode | None:
        if node is self.root and strcmp(name, "dev") == 0:
            return self.dev
        return next((entry for entry in self.nodes if strcmp(name, entry.name) == 0), None)


def initialise_initrd(image: bytes) -> FsNode:
    """Mount a ramdisk image and return its root directory."""
    return Initrd(image).root