"""Tools to format, open and modify ouichefs disk images from Python."""

__version__ = "0.1.0"