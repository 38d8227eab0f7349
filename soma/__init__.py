"""Your one-stop CTF problem management tool."""

__version__ = "0.1.0"

VERSION = __version__
