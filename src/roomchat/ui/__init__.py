"""
UI Package for Chat Client

This package provides the terminal user interface for the chat client
using the Textual framework.
"""

from .app import ChatApp, TextualRenderer

__all__ = ["ChatApp", "TextualRenderer"]
