"""Report output sinks."""
from .base import Sink
from .sheets import SheetsSink
from .sqlite import SqliteSink, init_database

__all__ = ["Sink", "SheetsSink", "SqliteSink", "init_database"]
