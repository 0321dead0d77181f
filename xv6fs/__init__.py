"""A small Unix-style file system: image builder, buffer cache, log, inodes, pipes and tools."""

__version__ = "0.1.0"