from .base import Store  # noqa: F401
from .memory import InMemoryStore  # noqa: F401
from .sql import SqlStore  # noqa: F401
