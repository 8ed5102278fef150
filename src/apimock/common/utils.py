"""
APIMock Common Utilities

Shared helpers for loading mock definitions and handling JSON payloads.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml


YAML_SUFFIXES = ('.yaml', '.yml')


def safe_json_parse(json_string: Union[str, bytes, None], default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string (or bytes) to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        body = safe_json_parse(await request.body(), default=None)
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def deep_clone(value: Any) -> Any:
    """Independent copy of a JSON-like value."""
    return copy.deepcopy(value)


class DefinitionLoader:
    """
    Loader for mock definition files.

    Handles the formats APIMock accepts:
    - YAML (.yaml / .yml) or JSON (anything else)
    - {"routes": [...], "scenarios": [...]}  (full document)
    - [...]                                  (bare list of routes)

    Example:
        loader = DefinitionLoader("mocks.yaml")
        definitions = loader.load()

        for route in definitions['routes']:
            print(route['method'], route['path'])
    """

    def __init__(self, file_path: Union[str, Path]):
        """
        Initialize definition loader.

        Args:
            file_path: Path to YAML or JSON definition file
        """
        self.file_path = Path(file_path)

    def load(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Load definitions from file.

        Returns:
            Dict with 'routes' and 'scenarios' lists

        Raises:
            FileNotFoundError: If definition file doesn't exist
            ValueError: If the document is not valid YAML/JSON or has the wrong shape
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Definition file not found: {self.file_path}")

        with open(self.file_path, 'r', encoding='utf-8') as f:
            try:
                if self.file_path.suffix.lower() in YAML_SUFFIXES:
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                raise ValueError(f"Could not parse {self.file_path}: {e}") from e

        return self.normalize(data, source=str(self.file_path))

    @staticmethod
    def normalize(data: Any, source: str = '<definitions>') -> Dict[str, List[Dict[str, Any]]]:
        """
        Bring an already-parsed document into {'routes': [...], 'scenarios': [...]} form.

        Raises:
            ValueError: If the document shape is unrecognized
        """
        if data is None:
            return {'routes': [], 'scenarios': []}

        if isinstance(data, list):
            data = {'routes': data}

        if not isinstance(data, dict):
            raise ValueError(
                f"Unexpected format in {source}. "
                f"Expected dict or list, got {type(data).__name__}"
            )

        unknown = set(data) - {'routes', 'scenarios'}
        if unknown:
            raise ValueError(
                f"Unexpected keys in {source}: {sorted(unknown)}. "
                f"Expected 'routes' and/or 'scenarios'"
            )

        routes = data.get('routes') or []
        scenarios = data.get('scenarios') or []
        for label, entries in (('routes', routes), ('scenarios', scenarios)):
            if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
                raise ValueError(f"'{label}' in {source} must be a list of mappings")

        for route in routes:
            if 'method' not in route or 'path' not in route:
                raise ValueError(f"Route in {source} is missing 'method' or 'path': {route}")

        for scenario in scenarios:
            if 'name' not in scenario:
                raise ValueError(f"Scenario in {source} is missing 'name': {scenario}")

        return {'routes': routes, 'scenarios': scenarios}


def load_document(file_path: Union[str, Path]) -> Any:
    """
    Read any YAML or JSON document (used for standalone schema files).

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the content cannot be parsed
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        try:
            if path.suffix.lower() in YAML_SUFFIXES:
                return yaml.safe_load(f)
            return json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Could not parse {path}: {e}") from e
