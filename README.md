# ext2sim

`ext2sim` opens an ext2 disk image and gives you a small command shell over it.
The shell reads and writes the image directly. It keeps a table of 128
in-memory inodes and tracks the current working directory of a single running
process.

## Installing

```
pip install .
```

To run the tests as well:

```
pip install .[test]
pytest
```

## Running the shell

```
ext2sim
```

By default the shell opens the file `diskimage` in the current directory. To
open a different image, pass its path:

```
ext2sim path/to/image
```

The image has to be an ext2 file system with 1024-byte blocks. Its super block
magic must be `0xEF53`. If the image cannot be opened or the magic is wrong,
the shell prints a message and exits with status 1. Otherwise it prints the
block bitmap, inode bitmap and inode table block numbers. Then it prompts for
commands until `quit` or end of input.

| command      | effect                                                     |
|--------------|------------------------------------------------------------|
| `ls [path]`  | long listing of a directory (the current one by default)   |
| `cd path`    | change the current directory                               |
| `pwd`        | print the current directory as `CWD = /...`                |
| `mkdir path` | create a directory                                         |
| `creat path` | create an empty regular file                               |
| `quit`       | release every in-memory inode, writing changed ones back   |

Paths can be absolute or relative to the current directory. Each `ls` line
shows:

- the type (`d` or `-`) and the permission bits
- the link count, owner and group
- the modification time and the size
- the name

Errors are printed and do not end the shell, for example a missing name, a
path that is not a directory, or a name that already exists. Unknown commands
are ignored.

## Using it from Python

```python
import sys

from ext2sim.filesystem import FileSystem
from ext2sim.commands import make_directory, create_file, ls, pwd, chdir
from ext2sim.shell import Shell

with FileSystem("diskimage") as fs:
    make_directory(fs, "/docs")          # returns the new inode number
    create_file(fs, "/docs/notes")
    for line in ls(fs, "/docs"):         # ls returns the listing lines
        print(line)
    chdir(fs, "/docs")
    print(pwd(fs, fs.running.cwd))       # "/docs"

    shell = Shell(fs, sys.stdout)
    shell.run(["cd /", "pwd"])
```

The functions in `ext2sim.commands` raise `CommandError` when a command cannot
be carried out. `CommandError` is a subclass of `FileSystemError`. Leaving the
`with` block calls `FileSystem.close`, which releases all inodes and closes
the image.

`FileSystem` gives access to the lower-level operations:

- `get_block` and `put_block` read and write 1024-byte blocks.
- `iget` and `iput` load and release in-memory inodes (`MInode`).
- `search` and `getino` look up names and resolve paths.
- `findino` and `findmyname` read the `.`/`..` entries and find an entry's name.
- `ialloc` and `balloc` allocate inodes and blocks from the bitmaps.
- `enter_name` adds a directory entry.
- `release_all` drops every outstanding reference.

`ext2sim.filesystem.tokenize` splits a path into its components.

`ext2sim.layout` holds the on-disk structures: `SuperBlock`, `GroupDescriptor`,
`Inode` and `DirEntry`. It also has these helpers:

- `parse_dir_entries` and `ideal_rec_len` for directory records.
- `test_bit`, `set_bit` and `clear_bit` for bitmaps.

## Limitations

- Names are looked up and listed only in a directory's first data block.
  Indirect blocks are never used.
- Only the first block group is handled. The inode and block bitmaps are each
  read as a single block.
- Allocation writes the updated bitmaps to the image. The free counts in the
  super block and group descriptor change only in memory and are never written
  back.
- There are no commands to read or write file contents, or to remove, rename
  or link entries.