"""Pixell Deploy - deployment execution agent."""

__version__ = "0.1.0"
__author__ = "Pixell Core Team"
