"""pledger command line interface.

Available commands: configure, create, book, edit, sort, push.
"""

from .main import main

__all__ = ["main"]
