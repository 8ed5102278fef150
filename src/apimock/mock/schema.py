"""
APIMock Schema Interpreter

Turns a declarative schema document into concrete response data.

Schema nodes:
- Scalars pass through unchanged
- ``"{{name(args...)}}"`` calls generator ``name`` with parsed arguments
- ``"$name"`` / ``"@name"`` call generator ``name`` with no arguments
- ``"params.id"``, ``"$query.page"``, ``"{{body.user.email}}"`` read the request
- Lists are interpreted element by element
- ``{"_repeat": n, "_template": node}`` expands to n independent instances
- Other mappings are interpreted key by key; ``_``-prefixed keys are
  directives and never reach the output

Nothing is cached: interpreting the same schema twice gives two fresh,
independently generated results.
"""

import copy
import json
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigurationError
from .generators import GeneratorRegistry


DIRECTIVE_PREFIX = '_'
REPEAT_KEY = '_repeat'
TEMPLATE_KEY = '_template'

REFERENCE_ROOTS = ('params', 'query', 'body')

_PLACEHOLDER = re.compile(r'^\{\{\s*([A-Za-z_][\w.]*)\s*(?:\((.*)\))?\s*\}\}$', re.DOTALL)
_SHORTHAND = re.compile(r'^[$@]([A-Za-z_][\w.]*)$')
_BARE_PARAM = re.compile(r'^params\.([A-Za-z_]\w*)$')
_NUMBER = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$')
_INTEGER = re.compile(r'^[+-]?\d+$')

_KEYWORDS = {'true': True, 'false': False, 'null': None, 'undefined': None}
_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r'}

_OPENERS = '[{('
_CLOSERS = ']})'


def _reject_constant(name: str):
    raise ValueError(f"Unsupported JSON constant: {name}")


def _unescape(text: str) -> str:
    out: List[str] = []
    escaped = False
    for char in text:
        if escaped:
            out.append(_ESCAPES.get(char, char))
            escaped = False
        elif char == '\\':
            escaped = True
        else:
            out.append(char)
    if escaped:
        out.append('\\')
    return ''.join(out)


def parse_arg_value(token: str) -> Any:
    """
    Coerce one raw argument token.

    Order: keyword literals (true/false/null/undefined), quoted strings,
    numbers, JSON array/object literals, and finally the raw text.

    Example:
        parse_arg_value('42')        -> 42
        parse_arg_value('"a,b"')     -> 'a,b'
        parse_arg_value('[1, 2]')    -> [1, 2]
        parse_arg_value('hello')     -> 'hello'
    """
    if token in _KEYWORDS:
        return _KEYWORDS[token]

    if len(token) >= 2 and token[0] == token[-1] and token[0] in ('"', "'"):
        return _unescape(token[1:-1])

    if _NUMBER.match(token):
        return int(token) if _INTEGER.match(token) else float(token)

    try:
        return json.loads(token, parse_constant=_reject_constant)
    except ValueError:
        return token


def parse_args(text: Optional[str]) -> List[Any]:
    """
    Split a placeholder argument list on top-level commas.

    Commas inside quoted strings (single or double, backslash escapes
    honoured) and inside [], {} or () nesting do not split.

    Example:
        parse_args('1, "a, b", [3, 4], {"k": 5}')
        # -> [1, 'a, b', [3, 4], {'k': 5}]
    """
    if text is None or not text.strip():
        return []

    args: List[Any] = []
    current: List[str] = []
    quote: Optional[str] = None
    escaped = False
    depth = 0

    for char in text:
        if quote:
            current.append(char)
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == quote:
                quote = None
            continue

        if char in ('"', "'"):
            quote = char
            current.append(char)
        elif char in _OPENERS:
            depth += 1
            current.append(char)
        elif char in _CLOSERS:
            depth = max(depth - 1, 0)
            current.append(char)
        elif char == ',' and depth == 0:
            args.append(parse_arg_value(''.join(current).strip()))
            current = []
        else:
            current.append(char)

    tail = ''.join(current).strip()
    if tail:
        args.append(parse_arg_value(tail))
    return args


def coerce_repeat_count(value: Any) -> int:
    """Repeat counts below one, or not numeric at all, become exactly one."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 1
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return 1
    count = int(value)
    return count if count > 0 else 1


def _is_reference(name: str) -> bool:
    root, dot, _ = name.partition('.')
    return bool(dot) and root in REFERENCE_ROOTS


def _references(context: Any) -> Dict[str, Any]:
    if context is None:
        return {'params': {}, 'query': {}, 'body': None}
    if isinstance(context, Mapping):
        return {
            'params': context.get('params') or {},
            'query': context.get('query') or {},
            'body': context.get('body'),
        }
    return {
        'params': getattr(context, 'params', None) or {},
        'query': getattr(context, 'query', None) or {},
        'body': getattr(context, 'body', None),
    }


class TemplateInterpreter:
    """
    Recursive schema interpreter.

    The generator registry is injected, so tests can run with their own
    deterministic generators in isolation.

    Example:
        interpreter = TemplateInterpreter(GeneratorRegistry(seed=1))
        interpreter.interpret(
            {'id': 'params.id', 'name': '{{fullName}}',
             'tags': {'_repeat': 2, '_template': '{{lorem(1)}}'}},
            {'params': {'id': '42'}}
        )
        # -> {'id': '42', 'name': '...', 'tags': ['...', '...']}
    """

    def __init__(self, registry: Optional[GeneratorRegistry] = None, logger: Optional[logging.Logger] = None):
        self.registry = registry if registry is not None else GeneratorRegistry()
        self.logger = logger or logging.getLogger('apimock.mock.schema')

    def interpret(self, node: Any, context: Any = None) -> Any:
        """
        Materialize a schema node.

        Args:
            node: Schema document (any SchemaNode)
            context: RequestContext or mapping with params/query/body

        Returns:
            Fully generated value with no placeholders left
        """
        return self._process(node, _references(context))

    def expand(self, node: Any, count: Any, context: Any = None) -> List[Any]:
        """Generate ``count`` independent instances of node (count coerced to >= 1)."""
        refs = _references(context)
        return [self._process(node, refs) for _ in range(self._repeat_count(count, refs))]

    def _process(self, node: Any, refs: Dict[str, Any]) -> Any:
        if node is None:
            return None
        if isinstance(node, str):
            return self._process_string(node, refs)
        if isinstance(node, (list, tuple)):
            return [self._process(item, refs) for item in node]
        if isinstance(node, Mapping):
            return self._process_mapping(node, refs)
        return node

    def _process_mapping(self, node: Mapping, refs: Dict[str, Any]) -> Any:
        if REPEAT_KEY in node and TEMPLATE_KEY in node:
            count = self._repeat_count(node[REPEAT_KEY], refs)
            template = node[TEMPLATE_KEY]
            return [self._process(template, refs) for _ in range(count)]

        return {
            key: self._process(value, refs)
            for key, value in node.items()
            if not (isinstance(key, str) and key.startswith(DIRECTIVE_PREFIX))
        }

    def _repeat_count(self, raw: Any, refs: Dict[str, Any]) -> int:
        if isinstance(raw, str):
            raw = self._process_string(raw, refs)
        return coerce_repeat_count(raw)

    def _process_string(self, value: str, refs: Dict[str, Any]) -> Any:
        match = _PLACEHOLDER.match(value)
        if match:
            name, args_text = match.groups()
            if _is_reference(name):
                return self._resolve_reference(name, refs)
            return self._call_generator(name, parse_args(args_text))

        match = _SHORTHAND.match(value)
        if match:
            name = match.group(1)
            if _is_reference(name):
                return self._resolve_reference(name, refs)
            if name in self.registry:
                return self._call_generator(name, [])
            # "$USD" and friends are ordinary text
            self.logger.debug(f"No generator named '{name}', keeping literal {value!r}")
            return value

        match = _BARE_PARAM.match(value)
        if match:
            return self._resolve_reference(value, refs)

        return value

    def _call_generator(self, name: str, args: List[Any]) -> Any:
        if name not in self.registry:
            self.logger.warning(f"Unknown generator: {name}, returning None")
            return None

        try:
            return self.registry.call(name, args)
        except Exception as e:
            self.logger.warning(f"Generator {name} failed: {e}, returning None")
            return None

    def _resolve_reference(self, path: str, refs: Dict[str, Any]) -> Any:
        root, _, rest = path.partition('.')
        value = refs.get(root)

        for part in rest.split('.'):
            if isinstance(value, Mapping):
                value = value.get(part)
            elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
                value = value[int(part)]
            else:
                return None

        return copy.deepcopy(value)


class Schema:
    """
    A schema document bound to an interpreter.

    Example:
        schema = create_schema({'type': 'user', 'id': '{{uuid}}'})
        schema.generate()  # -> {'type': 'user', 'id': '3f0c...'}
    """

    def __init__(self, definition: Any, registry: Optional[GeneratorRegistry] = None):
        if not isinstance(definition, (dict, list)):
            raise ConfigurationError('Schema definition must be a non-null object')
        self.definition = definition
        self.interpreter = TemplateInterpreter(registry)

    def generate(self, context: Any = None) -> Any:
        return self.interpreter.interpret(self.definition, context)

    parse_args = staticmethod(parse_args)


def create_schema(definition: Any, registry: Optional[GeneratorRegistry] = None) -> Schema:
    return Schema(definition, registry)
