"""
UI Package for the Conference Client

This package provides the terminal user interface for the anonymous
conference client using the Textual framework.
"""

from .app import ConferenceApp

__all__ = ["ConferenceApp"]
