"""DrCrop plant disease scanning backend."""

__version__ = "0.1.0"
