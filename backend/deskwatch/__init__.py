"""DeskWatch: virtual desktop host monitoring dashboard backend."""

__version__ = "0.1.0"
