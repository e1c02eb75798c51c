"""Local-first productivity tracker with daily goals and AI summaries."""

__version__ = "0.3.0"
