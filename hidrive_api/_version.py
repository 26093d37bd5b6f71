__version__ = "0.3.0"
__version_info__ = tuple(int(p) for p in __version__.split("."))
