"""Source descriptor registry."""
from .registry import SourceDescriptor, SourceRegistry, parse_source

__all__ = ["SourceDescriptor", "SourceRegistry", "parse_source"]
