"""Interactive shell and helpers for working inside an ext2 disk image."""

__version__ = "0.1.0"
__all__ = ["layout", "filesystem", "commands", "shell"]