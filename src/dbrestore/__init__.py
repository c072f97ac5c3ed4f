"""
dbrestore - Restore PostgreSQL dumps into cloud database services
"""

__version__ = "0.1.0"

from .core import Restorer
from .errors import RestoreError
from .models import RestoreOutcome, RestoreRequest

__all__ = ["Restorer", "RestoreError", "RestoreOutcome", "RestoreRequest"]
