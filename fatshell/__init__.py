"""FAT32 disk-image access, an open file table, printf/scanf formatting, a slab heap model and an interactive shell."""

__version__ = "0.1.0"

__all__ = ["__version__"]