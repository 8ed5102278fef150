"""
APIMock Common Utilities

Shared utilities and helpers used across APIMock modules.
"""

from .utils import DefinitionLoader, safe_json_parse, deep_clone, load_document
from .url_utils import URLParser

__all__ = [
    'DefinitionLoader',
    'safe_json_parse',
    'deep_clone',
    'load_document',
    'URLParser'
]
