"""Interactive command loop over a mounted ext2 image."""

from __future__ import annotations

import argparse
import sys
from typing import Iterable, Optional, TextIO

from . import commands
from .filesystem import FileSystem, FileSystemError

PROMPT = "input command : [ls | cd | pwd | mkdir | quit | creat] "
DEFAULT_DISK = "diskimage"


class Shell:
    """Reads command lines and runs them against a file system."""

    def __init__(self, fs: FileSystem, out: Optional[TextIO] = None):
        self.fs = fs
        self.out = out if out is not None else sys.stdout
        self.handlers = {
            "ls": self._ls,
            "cd": self._cd,
            "pwd": self._pwd,
            "mkdir": self._mkdir,
            "creat": self._creat,
        }

    def _say(self, text: str) -> None:
        print(text, file=self.out)

    def execute(self, line: str) -> bool:
        """Run one command line; return False once ``quit`` is given."""
        parts = line.split()
        if not parts:
            return True
        cmd = parts[0]
        pathname = parts[1] if len(parts) > 1 else ""
        if cmd == "quit":
            self.fs.release_all()
            return False
        handler = self.handlers.get(cmd)
        if handler is not None:
            handler(pathname)
        return True

    def run(self, lines: Iterable[str]) -> None:
        """Execute lines in order until they run out or ``quit`` is given."""
        for line in lines:
            if not self.execute(line):
                break

    def _ls(self, pathname: str) -> None:
        try:
            listing = commands.ls(self.fs, pathname)
        except FileSystemError as exc:
            self._say(f"Failure: {exc}")
            return
        for entry in listing:
            self._say(entry)
        self._say("")

    def _cd(self, pathname: str) -> None:
        try:
            commands.chdir(self.fs, pathname)
        except FileSystemError as exc:
            self._say(f"Failure: {exc}")

    def _pwd(self, pathname: str) -> None:
        try:
            self._say(f"CWD = {commands.pwd(self.fs, self.fs.running.cwd)}")
        except FileSystemError as exc:
            self._say(f"Failure: {exc}")

    def _mkdir(self, pathname: str) -> None:
        if not pathname:
            self._say("Error: No path specified!")
            return
        try:
            commands.make_directory(self.fs, pathname)
        except FileSystemError as exc:
            self._say(str(exc))
            self._say(f"mkdir {pathname} failed")

    def _creat(self, pathname: str) -> None:
        try:
            commands.create_file(self.fs, pathname)
        except FileSystemError as exc:
            self._say(str(exc))
            self._say(f"creat {pathname} failed")


def _prompted_lines(stream: TextIO, out: TextIO):
    while True:
        print(PROMPT, end="", file=out, flush=True)
        line = stream.readline()
        if not line:
            return
        yield line


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Browse and modify an ext2 image.")
    parser.add_argument("disk", nargs="?", default=DEFAULT_DISK, help="image file")
    args = parser.parse_args(argv)
    out = sys.stdout

    print("checking EXT2 FS ....", end="", file=out)
    try:
        fs = FileSystem(args.disk)
    except OSError:
        print(f"open {args.disk} failed", file=out)
        return 1
    except (FileSystemError, ValueError) as exc:
        print(exc, file=out)
        return 1
    print("EXT2 FS OK", file=out)
    with fs:
        print(
            f"bmp={fs.bmap} imap={fs.imap} inode_start = {fs.inode_start}", file=out
        )
        Shell(fs, out).run(_prompted_lines(sys.stdin, out))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())