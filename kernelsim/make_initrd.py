"""Build an initial ramdisk image from files on disk."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence
from pathlib import Path

from kernelsim.initrd import (
    COUNT_SIZE,
    DATA_START,
    FILE_HEADER_SIZE,
    FILE_MAGIC,
    MAX_FILES,
    InitrdFileHeader,
    parse_headers,
)

OUTPUT_PATH = "initrd.img"


def build_initrd(files: Iterable[tuple[str, bytes]]) -> bytes:
    """Return a ramdisk image holding the (name, data) pairs in order."""
    entries = [(name, bytes(data)) for name, data in files]
    if len(entries) > MAX_FILES:
        raise ValueError(f"a ramdisk holds at most {MAX_FILES} files")
    headers = []
    offset = DATA_START
    for name, data in entries:
        headers.append(InitrdFileHeader(FILE_MAGIC, name, offset, len(data)))
        offset += len(data)
    table = b"".join(header.pack() for header in headers)
    table += bytes(FILE_HEADER_SIZE * (MAX_FILES - len(headers)))
    count = len(entries).to_bytes(COUNT_SIZE, "little")
    return count + table + b"".join(data for _, data in entries)


def write_initrd(pairs: Iterable[tuple[str, str]], output: str | Path) -> list[InitrdFileHeader]:
    """Pack each (source path, name) pair into a ramdisk written to output."""
    files = [(name, Path(source).read_bytes()) for source, name in pairs]
    image = build_initrd(files)
    Path(output).write_bytes(image)
    return parse_headers(image)


def main(argv: Sequence[str] | None = None) -> int:
    """Usage: make_initrd SOURCE NAME [SOURCE NAME ...]; writes ./initrd.img."""
    args = list(sys.argv[1:] if argv is None else argv)
    pairs = list(zip(args[0::2], args[1::2]))
    print(f"size of header: {FILE_HEADER_SIZE}")
    try:
        headers = write_initrd(pairs, OUTPUT_PATH)
    except FileNotFoundError as exc:
        print(f"Error: file not found: {exc.filename}")
        return 1
    except ValueError as exc:
        print(f"Error: {exc}")
        return 1
    for (source, name), header in zip(pairs, headers):
        print(f"writing file {source}->{name} at 0x{header.offset:x}")
    return 0


if __name__ == "__main__":
    sys.exit(main())