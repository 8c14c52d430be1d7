import pytest
from hypothesis import given, strategies as st

from kernelsim.fs import NodeType
from kernelsim.initrd import (
    FILE_HEADER_SIZE,
    FILE_MAGIC,
    Initrd,
    InitrdFileHeader,
    initialise_initrd,
    parse_headers,
)
from kernelsim.make_initrd import build_initrd

FILES = [("hello.txt", b"Hello, world!"), ("notes", b"some notes here")]


@pytest.fixture
def ramdisk():
    return Initrd(build_initrd(FILES))


def test_packed_file_header_is_76_bytes_with_magic_first():
    packed = InitrdFileHeader(FILE_MAGIC, "a", 0, 0).pack()
    assert len(packed) == FILE_HEADER_SIZE == 76
    assert packed[0] == FILE_MAGIC


@given(
    name=st.text(alphabet="abcdefghijklmnopqrstuvwxyz._-0123456789", max_size=63),
    offset=st.integers(0, 0xFFFFFFFF),
    length=st.integers(0, 0xFFFFFFFF),
)
def test_header_round_trip(name, offset, length):
    header = InitrdFileHeader(FILE_MAGIC, name, offset, length)
    packed = header.pack()
    assert len(packed) == FILE_HEADER_SIZE
    assert InitrdFileHeader.unpack(packed) == header


def test_header_rejects_long_name():
    with pytest.raises(ValueError):
        InitrdFileHeader(FILE_MAGIC, "n" * 64, 0, 0).pack()


def test_parse_headers_lists_files():
    headers = parse_headers(build_initrd(FILES))
    assert [(h.name, h.length, h.magic) for h in headers] == [
        (name, len(data), FILE_MAGIC) for name, data in FILES
    ]


def test_parse_headers_rejects_short_images():
    with pytest.raises(ValueError):
        parse_headers(b"\x01\x00")
    with pytest.raises(ValueError):
        parse_headers((2).to_bytes(4, "little"))


def test_root_lists_dev_then_files(ramdisk):
    names = []
    index = 0
    while (entry := ramdisk.root.readdir(index)) is not None:
        names.append((entry.name, entry.ino))
        index += 1
    assert names == [("dev", 0), ("hello.txt", 0), ("notes", 1)]


def test_dev_directory_is_found_and_is_a_directory(ramdisk):
    dev = ramdisk.root.finddir("dev")
    assert dev is ramdisk.dev
    assert dev.flags & 0x7 == NodeType.DIRECTORY


def test_dev_shares_the_file_listing(ramdisk):
    assert ramdisk.dev.readdir(0) is None
    assert ramdisk.dev.readdir(1).name == "hello.txt"
    assert ramdisk.dev.finddir("dev") is None
    assert ramdisk.dev.finddir("notes") is ramdisk.nodes[1]


def test_read_whole_and_partial(ramdisk):
    node = ramdisk.root.finddir("hello.txt")
    assert node.read(0, 256) == b"Hello, world!"
    assert node.read(7, 5) == b"world"
    assert node.length == len(b"Hello, world!")


def test_read_at_or_past_end_is_empty(ramdisk):
    node = ramdisk.root.finddir("notes")
    assert node.read(node.length, 10) == b""
    assert node.read(node.length + 1, 10) == b""


def test_missing_file_is_not_found(ramdisk):
    assert ramdisk.root.finddir("missing") is None


def test_initialise_initrd_returns_root():
    root = initialise_initrd(build_initrd(FILES))
    assert root.name == "initrd"
    assert root.finddir("notes").read(0, 4) == b"some"