"""
APIMock Request Context

The already-parsed request every pipeline stage works from.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


@dataclass
class RequestContext:
    """
    One incoming request as seen by the mock pipeline.

    Header names are stored lower-cased. ``state`` is the optional
    StateManager shared across requests; ``extra`` carries values added by
    interceptors.
    """

    method: str = 'GET'
    path: str = '/'
    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    state: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.method = self.method.upper()
        self.headers = {str(k).lower(): v for k, v in (self.headers or {}).items()}
        self.params = dict(self.params or {})
        self.query = dict(self.query or {})

    @classmethod
    def from_mapping(
        cls,
        method: str,
        path: str,
        context: Optional[Mapping[str, Any]] = None,
        params: Optional[Dict[str, str]] = None
    ) -> 'RequestContext':
        """
        Build a context from a plain mapping with optional
        query/headers/body/state keys; any other key lands in ``extra``.
        """
        context = dict(context or {})
        known = {
            'query': context.pop('query', None),
            'headers': context.pop('headers', None),
            'body': context.pop('body', None),
            'state': context.pop('state', None),
        }
        merged_params = dict(context.pop('params', None) or {})
        merged_params.update(params or {})
        extra = dict(context.pop('extra', None) or {})
        extra.update(context)
        return cls(method=method, path=path, params=merged_params, extra=extra, **known)

    def with_params(self, params: Dict[str, str]) -> 'RequestContext':
        """Copy of this context with path parameters bound."""
        return RequestContext(
            method=self.method,
            path=self.path,
            params={**self.params, **params},
            query=self.query,
            headers=self.headers,
            body=self.body,
            state=self.state,
            extra=dict(self.extra),
        )

    def header(self, name: str, default: Any = None) -> Any:
        return self.headers.get(name.lower(), default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'path': self.path,
            'params': dict(self.params),
            'query': dict(self.query),
            'headers': dict(self.headers),
            'body': self.body,
        }
