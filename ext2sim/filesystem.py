"""An ext2 disk image with an in-memory inode cache and a running process."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Optional

from .layout import (
    BLKSIZE,
    DIRECT_BLOCKS,
    EXT2_MAGIC,
    GROUP_DESC_SIZE,
    INODE_SIZE,
    INODES_PER_BLOCK,
    NFD,
    NMINODE,
    NPROC,
    ROOT_INO,
    DirEntry,
    GroupDescriptor,
    Inode,
    SuperBlock,
    ideal_rec_len,
    parse_dir_entries,
    set_bit,
    test_bit,
)


class FileSystemError(Exception):
    """Raised when the image or an operation on it is invalid."""


class ProcStatus(enum.IntEnum):
    FREE = 0
    READY = 1


@dataclass(eq=False)
class MInode:
    """An inode held in memory, with its reference count and dirty flag."""

    ino: int = 0
    inode: Inode = field(default_factory=Inode)
    ref_count: int = 0
    dirty: bool = False
    mounted: bool = False


@dataclass(eq=False)
class Process:
    pid: int
    uid: int = 0
    gid: int = 0
    status: ProcStatus = ProcStatus.FREE
    cwd: Optional[MInode] = None
    fds: list = field(default_factory=lambda: [None] * NFD)


def tokenize(pathname: str) -> list[str]:
    """Split a path into its non-empty components."""
    return [part for part in pathname.split("/") if part]


class FileSystem:
    """An open ext2 image with the root mounted and process 0 running."""

    def __init__(self, path):
        self.path = os.fspath(path)
        self._file = open(self.path, "r+b")
        try:
            self.super_block = SuperBlock.from_bytes(self.get_block(1))
            if self.super_block.magic != EXT2_MAGIC:
                raise FileSystemError(
                    f"magic = {self.super_block.magic:x} is not an ext2 filesystem"
                )
            self.group_desc = GroupDescriptor.from_bytes(
                self.get_block(2)[:GROUP_DESC_SIZE]
            )
        except BaseException:
            self._file.close()
            raise
        self.ninodes = self.super_block.inodes_count
        self.nblocks = self.super_block.blocks_count
        self.bmap = self.group_desc.block_bitmap
        self.imap = self.group_desc.inode_bitmap
        self.inode_start = self.group_desc.inode_table

        self.minodes = [MInode() for _ in range(NMINODE)]
        self.processes = [Process(pid=pid) for pid in range(NPROC)]
        self.root = self.iget(ROOT_INO)
        self.running = self.processes[0]
        self.running.status = ProcStatus.READY
        self.running.cwd = self.iget(ROOT_INO)

    def close(self) -> None:
        if self._file.closed:
            return
        self.release_all()
        self._file.close()

    def __enter__(self) -> "FileSystem":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def get_block(self, blk: int) -> bytearray:
        self._file.seek(blk * BLKSIZE)
        data = self._file.read(BLKSIZE)
        return bytearray(data.ljust(BLKSIZE, b"\0"))

    def put_block(self, blk: int, data: bytes) -> None:
        if len(data) != BLKSIZE:
            raise ValueError(f"block data must be {BLKSIZE} bytes, got {len(data)}")
        self._file.seek(blk * BLKSIZE)
        self._file.write(bytes(data))
        self._file.flush()

    def _inode_location(self, ino: int) -> tuple[int, int]:
        blk = (ino - 1) // INODES_PER_BLOCK + self.inode_start
        offset = (ino - 1) % INODES_PER_BLOCK * INODE_SIZE
        return blk, offset

    def iget(self, ino: int) -> MInode:
        """Return the in-memory inode for ``ino``, loading it if needed."""
        if not 1 <= ino <= self.ninodes:
            raise FileSystemError(f"invalid inode number {ino}")
        for mip in self.minodes:
            if mip.ino == ino:
                mip.ref_count += 1
                return mip
        for mip in self.minodes:
            if mip.ref_count == 0:
                blk, offset = self._inode_location(ino)
                block = self.get_block(blk)
                mip.ino = ino
                mip.ref_count = 1
                mip.dirty = False
                mip.inode = Inode.from_bytes(block[offset:offset + INODE_SIZE])
                return mip
        raise FileSystemError("no more free minodes")

    def iput(self, mip: MInode) -> None:
        """Drop a reference; write the inode back when it is unused and dirty."""
        mip.ref_count -= 1
        if mip.ref_count > 0 or not mip.dirty:
            return
        blk, offset = self._inode_location(mip.ino)
        block = self.get_block(blk)
        block[offset:offset + INODE_SIZE] = mip.inode.to_bytes()
        self.put_block(blk, block)
        mip.dirty = False

    def search(self, mip: MInode, name: str) -> Optional[int]:
        """Look ``name`` up in the first data block of a directory."""
        block = self.get_block(mip.inode.block[0])
        for entry in parse_dir_entries(block):
            if entry.name == name:
                return entry.inode
        return None

    def getino(self, pathname: str) -> int:
        """Resolve a path, absolute or relative to the cwd, to an inode number."""
        if pathname == "/":
            return ROOT_INO
        mip = self.root if pathname.startswith("/") else self.running.cwd
        mip.ref_count += 1
        for component in tokenize(pathname):
            ino = self.search(mip, component)
            self.iput(mip)
            if ino is None:
                raise FileSystemError(f"name {component} does not exist")
            mip = self.iget(ino)
        ino = mip.ino
        self.iput(mip)
        return ino

    def findino(self, mip: MInode) -> tuple[int, int]:
        """Return the inode numbers of a directory's '.' and '..' entries."""
        entries = parse_dir_entries(self.get_block(mip.inode.block[0]))
        try:
            myself = next(entries)
            parent = next(entries)
        except StopIteration:
            raise FileSystemError(f"directory {mip.ino} lacks '.' or '..'") from None
        return myself.inode, parent.inode

    def findmyname(self, parent: MInode, myino: int) -> str:
        """Return the name under which ``myino`` appears in ``parent``."""
        for entry in parse_dir_entries(self.get_block(parent.inode.block[0])):
            if entry.inode == myino:
                return entry.name
        raise FileSystemError(f"inode {myino} not found in directory {parent.ino}")

    def ialloc(self) -> int:
        """Allocate a free inode number from the inode bitmap."""
        buf = self.get_block(self.imap)
        for bit in range(min(self.ninodes, BLKSIZE * 8)):
            if not test_bit(buf, bit):
                set_bit(buf, bit)
                self.put_block(self.imap, buf)
                self.super_block.free_inodes_count -= 1
                self.group_desc.free_inodes_count -= 1
                return bit + 1
        raise FileSystemError("no free inodes")

    def balloc(self) -> int:
        """Allocate a free block number from the block bitmap."""
        buf = self.get_block(self.bmap)
        for bit in range(min(self.super_block.blocks_count, BLKSIZE * 8)):
            if not test_bit(buf, bit):
                set_bit(buf, bit)
                self.put_block(self.bmap, buf)
                self.super_block.free_blocks_count -= 1
                self.group_desc.free_blocks_count -= 1
                return bit + 1
        raise FileSystemError("no free blocks")

    def enter_name(self, parent: MInode, child_ino: int, child_name: str) -> None:
        """Add a directory record for ``child_name`` to ``parent``."""
        needed = ideal_rec_len(len(child_name.encode("utf-8", "surrogateescape")))
        pointers = parent.inode.block
        for index in range(DIRECT_BLOCKS):
            blk = pointers[index]
            if blk == 0:
                break
            data = self.get_block(blk)
            *_, last = parse_dir_entries(data)
            ideal = ideal_rec_len(last.name_len)
            remaining = last.rec_len - ideal
            if remaining >= needed:
                last.rec_len = ideal
                data[last.offset:last.offset + ideal] = last.pack()
                start = last.offset + ideal
                data[start:start + remaining] = DirEntry(
                    child_ino, remaining, child_name
                ).pack()
                self.put_block(blk, data)
                return
        else:
            raise FileSystemError(f"directory {parent.ino} has no free direct block")

        new_blk = self.balloc()
        pointers[index] = new_blk
        parent.inode.blocks += BLKSIZE // 512
        parent.inode.size += BLKSIZE
        parent.dirty = True
        self.put_block(new_blk, DirEntry(child_ino, BLKSIZE, child_name).pack())

    def release_all(self) -> None:
        """Drop every outstanding reference, writing dirty inodes back."""
        for mip in self.minodes:
            while mip.ref_count > 0:
                self.iput(mip)