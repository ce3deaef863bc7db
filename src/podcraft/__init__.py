"""podcraft: turn podcast transcripts into a family of written content."""

__version__ = "0.1.0"
