"""Higawari: a moderated, anonymous, multi-part writing challenge bot for Discord."""

__version__ = "1.0.0"
