"""Click command groups registered on the root ``pypi`` command."""

from .config import config
from .info import info
from .publish import publish
from .search import search
from .security import security
from .stats import stats
from .token import token

__all__ = ["config", "info", "publish", "search", "security", "stats", "token"]
