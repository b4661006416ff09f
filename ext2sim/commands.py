"""Shell commands over a mounted image: cd, ls, pwd, mkdir and creat."""

from __future__ import annotations

import posixpath
import stat
import time

from .filesystem import FileSystem, FileSystemError, MInode
from .layout import BLKSIZE, MAX_NAME_LEN, N_BLOCK_POINTERS, DirEntry, parse_dir_entries

_DIR_MODE = stat.S_IFDIR | 0o755
_FILE_MODE = stat.S_IFREG | 0o644
_DOT_REC_LEN = 12
_PERMISSION_LETTERS = "rwxrwxrwx"


class CommandError(FileSystemError):
    """Raised when a command cannot be carried out on its argument."""


def chdir(fs: FileSystem, pathname: str) -> None:
    """Make ``pathname`` the running process's working directory."""
    mip = fs.iget(fs.getino(pathname))
    if not mip.inode.is_dir():
        fs.iput(mip)
        raise CommandError(f"[ {pathname} ] Not a directory!")
    fs.iput(fs.running.cwd)
    fs.running.cwd = mip


def ls_file(mip: MInode, name: str) -> str:
    """Format one ``ls -l`` style line for an in-memory inode."""
    inode = mip.inode
    kind = "d" if inode.is_dir() else "-"
    perm = "".join(
        letter if inode.mode & (1 << (8 - position)) else "-"
        for position, letter in enumerate(_PERMISSION_LETTERS)
    )
    date = time.ctime(inode.mtime)[4:24]
    return (
        f"{kind}{perm}{inode.links_count: 4d}{inode.uid: 4d}{inode.gid: 4d}"
        f"  {date} {inode.size: 8d}    {name}"
    )


def ls_dir(fs: FileSystem, mip: MInode) -> list[str]:
    """List the entries of a directory's first data block, one line each."""
    lines = []
    for entry in parse_dir_entries(fs.get_block(mip.inode.block[0])):
        if entry.inode == 0:
            continue
        child = fs.iget(entry.inode)
        try:
            lines.append(ls_file(child, entry.name))
        finally:
            fs.iput(child)
    return lines


def ls(fs: FileSystem, pathname: str) -> list[str]:
    """List ``pathname``, or the working directory when it is empty."""
    if not pathname:
        return ls_dir(fs, fs.running.cwd)
    mip = fs.iget(fs.getino(pathname))
    try:
        if not mip.inode.is_dir():
            raise CommandError(f"[ {pathname} ] Not a directory!")
        return ls_dir(fs, mip)
    finally:
        fs.iput(mip)


def pwd(fs: FileSystem, wd: MInode) -> str:
    """Return the absolute path of directory ``wd``."""
    names: list[str] = []
    held: list[MInode] = []
    node = wd
    try:
        while node is not fs.root:
            myino, parent_ino = fs.findino(node)
            if parent_ino == node.ino:
                raise FileSystemError(f"directory {node.ino} is its own parent")
            parent = fs.iget(parent_ino)
            held.append(parent)
            names.append(fs.findmyname(parent, myino).split("\r", 1)[0])
            node = parent
    finally:
        for parent in held:
            fs.iput(parent)
    return "/" + "/".join(reversed(names))


def _split_path(path: str) -> tuple[str, str]:
    """Split a path into parent path and final component, like dirname/basename."""
    if not path:
        raise CommandError("no path specified")
    stripped = path.rstrip("/")
    if not stripped:
        raise CommandError(f"cannot create {path!r}")
    child = posixpath.basename(stripped)
    parent = posixpath.dirname(stripped)
    if not parent:
        parent = "."
    elif parent != "/":
        parent = parent.rstrip("/") or "/"
    if len(child.encode("utf-8", "surrogateescape")) > MAX_NAME_LEN:
        raise CommandError(f"name longer than {MAX_NAME_LEN} bytes: {child}")
    return parent, child


def _open_parent(fs: FileSystem, parent_path: str) -> MInode:
    mip = fs.iget(fs.getino(parent_path))
    if not mip.inode.is_dir():
        fs.iput(mip)
        raise CommandError(f"{parent_path} is not a directory")
    return mip


def _init_inode(fs: FileSystem, mip: MInode, mode: int, size: int, links: int,
                blocks: int, first_block: int) -> None:
    inode = mip.inode
    now = int(time.time())
    inode.mode = mode
    inode.uid = fs.running.uid
    inode.gid = fs.running.gid
    inode.size = size
    inode.links_count = links
    inode.atime = inode.ctime = inode.mtime = now
    inode.blocks = blocks
    inode.block = [first_block] + [0] * (N_BLOCK_POINTERS - 1)
    mip.dirty = True


def make_directory(fs: FileSystem, path: str) -> int:
    """Create directory ``path`` and return its inode number."""
    parent_path, child = _split_path(path)
    parent = _open_parent(fs, parent_path)
    try:
        if fs.search(parent, child) is not None:
            raise CommandError(f"{child} already exists in {parent_path}")
        ino = fs.ialloc()
        blk = fs.balloc()
        mip = fs.iget(ino)
        try:
            _init_inode(fs, mip, _DIR_MODE, BLKSIZE, 2, 2, blk)
            block = (
                DirEntry(ino, _DOT_REC_LEN, ".").pack()
                + DirEntry(parent.ino, BLKSIZE - _DOT_REC_LEN, "..").pack()
            )
            fs.put_block(blk, block)
            parent.inode.links_count += 1
            parent.dirty = True
            fs.enter_name(parent, ino, child)
        finally:
            fs.iput(mip)
    finally:
        fs.iput(parent)
    return ino


def create_file(fs: FileSystem, path: str) -> int:
    """Create an empty regular file ``path`` and return its inode number."""
    parent_path, child = _split_path(path)
    parent = _open_parent(fs, parent_path)
    try:
        if fs.search(parent, child) is not None:
            raise CommandError(f"{child} already exists in {parent_path}")
        ino = fs.ialloc()
        mip = fs.iget(ino)
        try:
            _init_inode(fs, mip, _FILE_MODE, 0, 1, 0, 0)
            fs.enter_name(parent, ino, child)
        finally:
            fs.iput(mip)
    finally:
        fs.iput(parent)
    return ino