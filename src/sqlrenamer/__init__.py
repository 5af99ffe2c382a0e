"""
SQLRenamer - Rename a SQL Server instance and resynchronize client aliases
"""

__version__ = "0.3.0"

from .core import ServerRenamer
from .errors import RenameFailure, RenamerError

__all__ = ["ServerRenamer", "RenameFailure", "RenamerError"]
