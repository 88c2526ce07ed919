"""Consultancy CMS: comment moderation, session identity and user administration."""

__version__ = "0.1.0"
