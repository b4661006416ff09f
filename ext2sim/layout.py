"""On-disk structures of a 1 KiB-block ext2 file system and bitmap helpers."""

from __future__ import annotations

import stat
import struct
from dataclasses import dataclass, field
from typing import Iterator

BLKSIZE = 1024
SUPERBLOCK_SIZE = 1024
GROUP_DESC_SIZE = 32
INODE_SIZE = 128
INODES_PER_BLOCK = BLKSIZE // INODE_SIZE
EXT2_MAGIC = 0xEF53
ROOT_INO = 2
N_BLOCK_POINTERS = 15
DIRECT_BLOCKS = 12
DIR_ENTRY_HEADER_SIZE = 8
MAX_NAME_LEN = 255

NMINODE = 128
NFD = 16
NPROC = 2

_SUPER = struct.Struct("<13IHhH")
_GROUP = struct.Struct("<3I4H")
_INODE = struct.Struct("<2H5I2H3I15I")
_DIRENT = struct.Struct("<IHBB")

_SUPER_FIELDS = (
    "inodes_count",
    "blocks_count",
    "r_blocks_count",
    "free_blocks_count",
    "free_inodes_count",
    "first_data_block",
    "log_block_size",
    "log_frag_size",
    "blocks_per_group",
    "frags_per_group",
    "inodes_per_group",
    "mtime",
    "wtime",
    "mnt_count",
    "max_mnt_count",
    "magic",
)

_INODE_SCALARS = (
    "mode",
    "uid",
    "size",
    "atime",
    "ctime",
    "mtime",
    "dtime",
    "gid",
    "links_count",
    "blocks",
    "flags",
    "osd1",
)


def _require_length(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class SuperBlock:
    """The leading fields of the ext2 super block; the rest is kept verbatim."""

    inodes_count: int = 0
    blocks_count: int = 0
    r_blocks_count: int = 0
    free_blocks_count: int = 0
    free_inodes_count: int = 0
    first_data_block: int = 0
    log_block_size: int = 0
    log_frag_size: int = 0
    blocks_per_group: int = 0
    frags_per_group: int = 0
    inodes_per_group: int = 0
    mtime: int = 0
    wtime: int = 0
    mnt_count: int = 0
    max_mnt_count: int = 0
    magic: int = EXT2_MAGIC
    raw: bytes = field(default=bytes(SUPERBLOCK_SIZE), repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SuperBlock":
        _require_length(data, _SUPER.size, "super block")
        values = _SUPER.unpack_from(data)
        raw = bytes(data[:SUPERBLOCK_SIZE]).ljust(SUPERBLOCK_SIZE, b"\0")
        return cls(*values, raw=raw)

    def to_bytes(self) -> bytes:
        buf = bytearray(self.raw[:SUPERBLOCK_SIZE].ljust(SUPERBLOCK_SIZE, b"\0"))
        _SUPER.pack_into(buf, 0, *(getattr(self, name) for name in _SUPER_FIELDS))
        return bytes(buf)


@dataclass
class GroupDescriptor:
    """An ext2 block group descriptor."""

    block_bitmap: int = 0
    inode_bitmap: int = 0
    inode_table: int = 0
    free_blocks_count: int = 0
    free_inodes_count: int = 0
    used_dirs_count: int = 0
    pad: int = 0
    reserved: bytes = field(default=bytes(GROUP_DESC_SIZE - _GROUP.size), repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> "GroupDescriptor":
        _require_length(data, GROUP_DESC_SIZE, "group descriptor")
        values = _GROUP.unpack_from(data)
        return cls(*values, reserved=bytes(data[_GROUP.size:GROUP_DESC_SIZE]))

    def to_bytes(self) -> bytes:
        head = _GROUP.pack(
            self.block_bitmap,
            self.inode_bitmap,
            self.inode_table,
            self.free_blocks_count,
            self.free_inodes_count,
            self.used_dirs_count,
            self.pad,
        )
        tail_len = GROUP_DESC_SIZE - _GROUP.size
        return head + self.reserved[:tail_len].ljust(tail_len, b"\0")


def _empty_block_list() -> list[int]:
    return [0] * N_BLOCK_POINTERS


@dataclass
class Inode:
    """A 128-byte ext2 inode."""

    mode: int = 0
    uid: int = 0
    size: int = 0
    atime: int = 0
    ctime: int = 0
    mtime: int = 0
    dtime: int = 0
    gid: int = 0
    links_count: int = 0
    blocks: int = 0
    flags: int = 0
    osd1: int = 0
    block: list[int] = field(default_factory=_empty_block_list)
    tail: bytes = field(default=bytes(INODE_SIZE - _INODE.size), repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Inode":
        _require_length(data, INODE_SIZE, "inode")
        values = _INODE.unpack_from(data)
        scalars = values[: len(_INODE_SCALARS)]
        pointers = list(values[len(_INODE_SCALARS):])
        return cls(*scalars, block=pointers, tail=bytes(data[_INODE.size:INODE_SIZE]))

    def to_bytes(self) -> bytes:
        if len(self.block) != N_BLOCK_POINTERS:
            raise ValueError(f"inode needs {N_BLOCK_POINTERS} block pointers")
        head = _INODE.pack(
            *(getattr(self, name) for name in _INODE_SCALARS), *self.block
        )
        tail_len = INODE_SIZE - _INODE.size
        return head + self.tail[:tail_len].ljust(tail_len, b"\0")

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)


@dataclass
class DirEntry:
    """One ext2 directory record; ``offset`` is its position inside its block."""

    inode: int
    rec_len: int
    name: str
    file_type: int = 0
    offset: int = field(default=0, compare=False)

    @property
    def name_bytes(self) -> bytes:
        return self.name.encode("utf-8", "surrogateescape")

    @property
    def name_len(self) -> int:
        return len(self.name_bytes)

    def pack(self) -> bytes:
        """Return the record as exactly ``rec_len`` bytes, zero padded."""
        raw = self.name_bytes
        if len(raw) > MAX_NAME_LEN:
            raise ValueError(f"name longer than {MAX_NAME_LEN} bytes")
        if self.rec_len < DIR_ENTRY_HEADER_SIZE + len(raw):
            raise ValueError(f"rec_len {self.rec_len} too small for {self.name!r}")
        header = _DIRENT.pack(self.inode, self.rec_len, len(raw), self.file_type)
        return header + raw.ljust(self.rec_len - DIR_ENTRY_HEADER_SIZE, b"\0")


def parse_dir_entries(block: bytes) -> Iterator[DirEntry]:
    """Yield the records of a directory data block in order."""
    offset = 0
    end = len(block)
    while offset < end:
        if offset + DIR_ENTRY_HEADER_SIZE > end:
            raise ValueError(f"truncated directory entry at offset {offset}")
        inode, rec_len, name_len, file_type = _DIRENT.unpack_from(block, offset)
        if rec_len < DIR_ENTRY_HEADER_SIZE + name_len or offset + rec_len > end:
            raise ValueError(f"corrupt directory entry at offset {offset}")
        start = offset + DIR_ENTRY_HEADER_SIZE
        name = bytes(block[start:start + name_len]).decode("utf-8", "surrogateescape")
        yield DirEntry(inode, rec_len, name, file_type, offset)
        offset += rec_len


def ideal_rec_len(name_len: int) -> int:
    """Smallest 4-aligned record length holding a name of ``name_len`` bytes."""
    return 4 * ((DIR_ENTRY_HEADER_SIZE + 3 + name_len) // 4)


def test_bit(buf: bytes, bit: int) -> bool:
    return bool(buf[bit // 8] & (1 << (bit % 8)))


def set_bit(buf: bytearray, bit: int) -> None:
    buf[bit // 8] |= 1 << (bit % 8)


def clear_bit(buf: bytearray, bit: int) -> None:
    buf[bit // 8] &= ~(1 << (bit % 8)) & 0xFF