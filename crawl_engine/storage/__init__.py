"""
Storage collaborator implementations.
"""

from .memory_storage import InMemoryCrawlStorage
from .yaml_loader import SourceConfigLoader, load_storage_from_yaml

__all__ = ['InMemoryCrawlStorage', 'SourceConfigLoader', 'load_storage_from_yaml']
