"""Heirlooms: a catalog of family artifacts with AI-assisted summaries."""

__version__ = "0.1.0"
