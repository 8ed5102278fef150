#!/usr/bin/env python3
"""
APIMock CLI

Command-line interface for trying mock definitions without a server.

Commands:
    routes      - List routes defined in a definition file
    request     - Run one request through the mock pipeline
    generate    - Render a standalone schema document

Examples:
    # What does the file define?
    apimock routes mocks.yaml

    # Ask for a response
    apimock request mocks.yaml GET /users/42 --query expand=1 --seed 7

    # Same request with a scenario switched on
    apimock request mocks.yaml GET /users/42 --scenario maintenance

    # Render three instances of a schema
    apimock generate user.schema.yaml --count 3
"""

import argparse
import json
import sys
from typing import Dict, List, Optional

from .common import load_document
from .mock import MockConfig, MockServer
from .mock.errors import APIMockError, DelayAbortedError
from .mock.schema import TemplateInterpreter
from .mock.generators import GeneratorRegistry


def _pairs(values: Optional[List[str]], label: str) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for pair in values or []:
        if '=' not in pair:
            raise ValueError(f"Invalid {label} '{pair}', expected key=value")
        key, value = pair.split('=', 1)
        result[key] = value
    return result


def _load_server(definition_file: str, seed: Optional[int] = None) -> MockServer:
    server = MockServer(MockConfig(seed=seed, admin_enabled=False, log_level='warning'))
    server.load_definitions(definition_file)
    return server


def cmd_routes(args):
    """
    List routes from a definition file.

    Args:
        args: Parsed command-line arguments
    """
    try:
        server = _load_server(args.definition_file)
    except (OSError, ValueError, APIMockError) as e:
        print(f"❌ Failed to load definitions: {e}")
        sys.exit(1)

    routes = server.list_routes()
    print(f"📋 {len(routes)} route(s) in {args.definition_file}")
    for route in routes:
        print(f"   {route.method:<7} {route.path}  -> {route.config.status}")

    scenarios = server.scenarios.list()
    if scenarios:
        print(f"🎭 Scenarios: {', '.join(scenarios)}")


def cmd_request(args):
    """
    Run one request and print the response as JSON.

    Args:
        args: Parsed command-line arguments
    """
    try:
        server = _load_server(args.definition_file, seed=args.seed)
        context = {
            'query': _pairs(args.query, 'query'),
            'headers': _pairs(args.header, 'header'),
            'body': json.loads(args.body) if args.body else None,
        }
        for name in args.scenario or []:
            server.activate_scenario(name)
    except (OSError, ValueError, APIMockError) as e:
        print(f"❌ Failed to prepare request: {e}")
        sys.exit(1)

    try:
        response = server.handle_request_sync(args.method, args.path, context)
    except DelayAbortedError as e:
        print(f"❌ Request aborted: {e}")
        sys.exit(1)

    print(json.dumps(response.to_dict(), indent=2, default=str))


def cmd_generate(args):
    """
    Render a schema document.

    Args:
        args: Parsed command-line arguments
    """
    try:
        schema = load_document(args.schema_file)
    except (OSError, ValueError) as e:
        print(f"❌ Failed to load schema: {e}")
        sys.exit(1)

    interpreter = TemplateInterpreter(GeneratorRegistry(seed=args.seed))
    if args.count is None:
        result = interpreter.interpret(schema)
    else:
        result = interpreter.expand(schema, args.count)

    print(json.dumps(result, indent=2, default=str))


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='apimock',
        description="APIMock - schema-driven mock API responses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List routes
  %(prog)s routes mocks.yaml

  # Run a request with query, header and JSON body
  %(prog)s request mocks.yaml POST /users --header Authorization=token --body '{"name": "Ada"}'

  # Render a schema five times, reproducibly
  %(prog)s generate user.yaml --count 5 --seed 1
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- ROUTES command ---
    routes_parser = subparsers.add_parser('routes', help='List routes in a definition file')
    routes_parser.add_argument('definition_file', help='YAML or JSON definition file')

    # --- REQUEST command ---
    request_parser = subparsers.add_parser('request', help='Run one request through the mock')
    request_parser.add_argument('definition_file', help='YAML or JSON definition file')
    request_parser.add_argument('method', help='HTTP method')
    request_parser.add_argument('path', help='Request path, optionally with a query string')
    request_parser.add_argument('-q', '--query', nargs='+', help='Query parameters (key=value)')
    request_parser.add_argument('-H', '--header', nargs='+', help='Request headers (key=value)')
    request_parser.add_argument('-b', '--body', help='JSON request body')
    request_parser.add_argument('--scenario', nargs='+', help='Activate scenario(s) globally')
    request_parser.add_argument('--seed', type=int, help='Seed for reproducible output')

    # --- GENERATE command ---
    generate_parser = subparsers.add_parser('generate', help='Render a schema document')
    generate_parser.add_argument('schema_file', help='YAML or JSON schema file')
    generate_parser.add_argument('-n', '--count', type=int, help='Render N instances as a list')
    generate_parser.add_argument('--seed', type=int, help='Seed for reproducible output')

    # Parse arguments
    args = parser.parse_args(argv)

    # Dispatch to command handler
    if args.command == 'routes':
        cmd_routes(args)
    elif args.command == 'request':
        cmd_request(args)
    elif args.command == 'generate':
        cmd_generate(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
