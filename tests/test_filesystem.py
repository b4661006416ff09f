import pytest

from ext2sim.filesystem import FileSystem, FileSystemError, ProcStatus, tokenize
from ext2sim.layout import (
    BLKSIZE,
    INODE_SIZE,
    ROOT_INO,
    DirEntry,
    GroupDescriptor,
    Inode,
    SuperBlock,
    parse_dir_entries,
    set_bit,
    test_bit as bit_is_set,
)

DOCS_INO = 3
NOTES_INO = 4
USED_INODES = {1, 2, DOCS_INO, NOTES_INO}
USED_BLOCKS = set(range(1, 11))


def _dir_block(records):
    data = bytearray(BLKSIZE)
    position = 0
    for record in records:
        data[position:position + record.rec_len] = record.pack()
        position += record.rec_len
    return bytes(data)


def _build_image(path, magic=0xEF53):
    disk = bytearray(65 * BLKSIZE)

    def put(blk, data):
        disk[blk * BLKSIZE:blk * BLKSIZE + len(data)] = data

    put(1, SuperBlock(inodes_count=32, blocks_count=64, free_blocks_count=54,
                      free_inodes_count=28, first_data_block=1,
                      inodes_per_group=32, magic=magic).to_bytes())
    put(2, GroupDescriptor(block_bitmap=3, inode_bitmap=4, inode_table=5,
                           free_blocks_count=54, free_inodes_count=28,
                           used_dirs_count=2).to_bytes())
    bmap = bytearray(BLKSIZE)
    for blk in USED_BLOCKS:
        set_bit(bmap, blk - 1)
    put(3, bmap)
    imap = bytearray(BLKSIZE)
    for ino in USED_INODES:
        set_bit(imap, ino - 1)
    put(4, imap)

    inodes = {
        ROOT_INO: Inode(mode=0o40755, size=BLKSIZE, links_count=3, blocks=2,
                        block=[9] + [0] * 14),
        DOCS_INO: Inode(mode=0o40755, size=BLKSIZE, links_count=2, blocks=2,
                        block=[10] + [0] * 14),
        NOTES_INO: Inode(mode=0o100644, size=0, links_count=1),
    }
    table = bytearray(4 * BLKSIZE)
    for ino, inode in inodes.items():
        start = (ino - 1) * INODE_SIZE
        table[start:start + INODE_SIZE] = inode.to_bytes()
    put(5, table)

    put(9, _dir_block([DirEntry(2, 12, "."), DirEntry(2, 12, ".."),
                       DirEntry(DOCS_INO, 12, "docs"),
                       DirEntry(NOTES_INO, BLKSIZE - 36, "notes")]))
    put(10, _dir_block([DirEntry(DOCS_INO, 12, "."), DirEntry(2, BLKSIZE - 12, "..")]))
    path.write_bytes(bytes(disk))
    return path


@pytest.fixture
def image(tmp_path):
    return _build_image(tmp_path / "diskimage")


@pytest.fixture
def fs(image):
    with FileSystem(image) as opened:
        yield opened


def test_bad_magic_rejected(tmp_path):
    path = _build_image(tmp_path / "bad", magic=0x1234)
    with pytest.raises(FileSystemError):
        FileSystem(path)


def test_mount_sets_root_and_cwd(fs):
    assert fs.root.ino == ROOT_INO
    assert fs.running.cwd is fs.root
    assert fs.root.ref_count == 2
    assert fs.running.status is ProcStatus.READY
    assert fs.root.inode.is_dir()


def test_tokenize():
    assert tokenize("/a//b/c/") == ["a", "b", "c"]
    assert tokenize("") == []


def test_getino_paths(fs):
    assert fs.getino("/") == ROOT_INO
    assert fs.getino("/docs") == DOCS_INO
    assert fs.getino("docs/..") == ROOT_INO
    assert fs.getino("/docs/../notes") == NOTES_INO


def test_getino_keeps_reference_counts(fs):
    before = fs.root.ref_count
    fs.getino("/docs/..")
    assert fs.root.ref_count == before
    assert all(m.ref_count == 0 for m in fs.minodes if m.ino == DOCS_INO)


def test_getino_missing_raises(fs):
    before = fs.root.ref_count
    with pytest.raises(FileSystemError):
        fs.getino("/docs/missing")
    assert fs.root.ref_count == before


def test_search(fs):
    assert fs.search(fs.root, "notes") == NOTES_INO
    assert fs.search(fs.root, "nothing") is None


def test_iget_caches(fs):
    first = fs.iget(DOCS_INO)
    second = fs.iget(DOCS_INO)
    assert first is second
    assert first.ref_count == 2
    assert first.inode.block[0] == 10


def test_iget_rejects_invalid_inode(fs):
    with pytest.raises(FileSystemError):
        fs.iget(0)


def test_findino_and_findmyname(fs):
    docs = fs.iget(DOCS_INO)
    assert fs.findino(docs) == (DOCS_INO, ROOT_INO)
    assert fs.findmyname(fs.root, DOCS_INO) == "docs"
    with pytest.raises(FileSystemError):
        fs.findmyname(fs.root, 31)


def test_block_round_trip(fs):
    payload = bytes(range(256)) * 4
    fs.put_block(40, payload)
    assert fs.get_block(40) == payload
    with pytest.raises(ValueError):
        fs.put_block(40, b"short")


def test_ialloc(fs):
    before = fs.super_block.free_inodes_count
    first = fs.ialloc()
    second = fs.ialloc()
    assert first not in USED_INODES and second not in USED_INODES
    assert first != second
    imap = fs.get_block(fs.imap)
    assert bit_is_set(imap, first - 1) and bit_is_set(imap, second - 1)
    assert fs.super_block.free_inodes_count == before - 2
    assert fs.group_desc.free_inodes_count == before - 2


def test_balloc(fs):
    before = fs.super_block.free_blocks_count
    blk = fs.balloc()
    assert blk not in USED_BLOCKS
    assert bit_is_set(fs.get_block(fs.bmap), blk - 1)
    assert fs.super_block.free_blocks_count == before - 1


def test_enter_name_in_existing_block(fs):
    fs.enter_name(fs.root, 7, "report")
    assert fs.search(fs.root, "report") == 7
    records = list(parse_dir_entries(fs.get_block(fs.root.inode.block[0])))
    assert sum(r.rec_len for r in records) == BLKSIZE
    assert [r.name for r in records][-2:] == ["notes", "report"]


def test_enter_name_allocates_new_block(fs):
    size_before = fs.root.inode.size
    added = []
    for number in range(200):
        if fs.root.inode.block[1]:
            break
        name = f"entry{number:03d}"
        fs.enter_name(fs.root, 5, name)
        added.append(name)
    new_block = fs.root.inode.block[1]
    assert new_block not in USED_BLOCKS
    assert fs.root.inode.size == size_before + BLKSIZE
    assert fs.root.dirty
    tail = list(parse_dir_entries(fs.get_block(new_block)))
    assert [(r.name, r.rec_len) for r in tail] == [(added[-1], BLKSIZE)]
    head = [r.name for r in parse_dir_entries(fs.get_block(fs.root.inode.block[0]))]
    assert head + [r.name for r in tail] == [".", "..", "docs", "notes"] + added


def test_iput_writes_dirty_inode(image):
    with FileSystem(image) as first:
        mip = first.iget(NOTES_INO)
        mip.inode.size = 77
        mip.dirty = True
        first.iput(mip)
        assert mip.ref_count == 0
    with FileSystem(image) as second:
        assert second.iget(NOTES_INO).inode.size == 77


def test_release_all_and_close(image):
    fs = FileSystem(image)
    fs.iget(DOCS_INO)
    fs.release_all()
    assert all(m.ref_count == 0 for m in fs.minodes)
    fs.close()
    fs.close()
    with pytest.raises(ValueError):
        fs.get_block(1)