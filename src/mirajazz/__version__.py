"""mirajazz version information."""

__version__ = "0.6.2"
__version_info__ = tuple(int(x) for x in __version__.split("."))
