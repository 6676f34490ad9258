"""Lossless audio lookup and download, quality analysis, conversion and FFmpeg muxing for music videos."""

__version__ = "0.1.0"