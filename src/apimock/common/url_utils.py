"""
APIMock URL Utilities

Splitting request targets into the path the router matches and the query
the templates read.
"""

from typing import Any, Dict, Tuple
from urllib.parse import parse_qs, urlparse


class URLParser:
    """Request-target parsing helpers."""

    @staticmethod
    def parse_query(query: str) -> Dict[str, Any]:
        """
        Parse a query string into a dict.

        Single-valued keys map to a string, repeated keys to a list.

        Example:
            URLParser.parse_query('page=2&tag=a&tag=b')
            # -> {'page': '2', 'tag': ['a', 'b']}
        """
        parsed = parse_qs(query, keep_blank_values=True)
        return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}

    @staticmethod
    def split_target(target: str) -> Tuple[str, Dict[str, Any]]:
        """
        Split a request target (path or full URL) into path and query dict.

        Args:
            target: '/users/42?expand=1' or 'http://host/users/42?expand=1'

        Returns:
            Tuple of (path, query dict); the path defaults to '/'
        """
        parsed = urlparse(target)
        return URLParser.normalize_path(parsed.path or '/'), URLParser.parse_query(parsed.query)

    @staticmethod
    def normalize_path(path: str) -> str:
        """Ensure a leading slash."""
        if not path.startswith('/'):
            path = '/' + path
        return path
