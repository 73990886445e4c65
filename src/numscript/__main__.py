#!/usr/bin/env python3
"""
CLI for numscript.

Usage:
    python -m numscript eval EXPR [--format long] [--config FILE] [--json]
    python -m numscript run FILE [--format long] [--config FILE] [--json]
    python -m numscript check FILE [--ast]

Examples:
    # Evaluate an expression
    python -m numscript eval "[1,2;3,4] * [1;1]"

    # Run a script with long number format
    python -m numscript run script.num --format long

    # Parse only, printing the syntax tree
    python -m numscript check script.num --ast
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional


def _load_settings(args):
    from .settings import FormatSettings

    settings = FormatSettings.load(args.config) if args.config else FormatSettings()
    if args.format:
        settings = settings.with_mode(args.format)
    return settings


def _report(results, settings, as_json: bool) -> int:
    """Print results and diagnostics; return the exit status."""
    failed = any(not r.success for r in results)
    if as_json:
        payload = {
            "results": [r.to_json(settings) for r in results],
            "success": not failed,
        }
        print(json.dumps(payload, indent=2))
        return 1 if failed else 0

    for result in results:
        for diag in result.diagnostics:
            print(diag.format(), file=sys.stderr)
        if result.has_value:
            print(result.value.display(settings))
    return 1 if failed else 0


def _evaluate(source: str, args, filename: Optional[str] = None) -> int:
    from . import Context, evaluate

    try:
        settings = _load_settings(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    context = Context(settings=settings)
    results = evaluate(source, context, filename)
    # a format statement in the input switches the mode for what follows
    return _report(results, context.settings, args.json)


def cmd_eval(args):
    """Evaluate an expression given on the command line."""
    return _evaluate(args.expression, args)


def cmd_run(args):
    """Evaluate a script file."""
    source_path = Path(args.file)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return 1
    return _evaluate(source_path.read_text(encoding="utf-8"), args, str(source_path))


def cmd_check(args):
    """Check a script for syntax errors without evaluating it."""
    from .lexer import tokenize
    from .parser import parse
    from .ast import format_ast

    source_path = Path(args.file)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return 1

    source = source_path.read_text(encoding="utf-8")
    statements = parse(tokenize(source, str(source_path)), str(source_path), source)
    errors = [e for s in statements for e in s.errors]

    if args.json:
        print(json.dumps({
            "statements": len(statements),
            "diagnostics": [e.diagnostic.to_json() for e in errors],
        }, indent=2))
    else:
        for error in errors:
            print(error.diagnostic.format(), file=sys.stderr)
        if args.ast:
            for statement in statements:
                if statement.node is not None:
                    print(format_ast(statement.node))
        if not errors:
            print(f"OK: {source_path.name} - {len(statements)} statement(s), no errors")
    return 1 if errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog='python -m numscript',
        description='numscript expression evaluator',
    )
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log registry and evaluation details')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--json', action='store_true',
                        help='Print results and diagnostics as JSON')

    evaluation = argparse.ArgumentParser(add_help=False, parents=[common])
    evaluation.add_argument('--format', choices=['short', 'long'],
                            help='Number display format')
    evaluation.add_argument('--config', metavar='FILE',
                            help='YAML file with format settings')

    subparsers = parser.add_subparsers(dest='action', required=True)

    # eval command
    eval_parser = subparsers.add_parser('eval', parents=[evaluation],
                                        help='Evaluate an expression')
    eval_parser.add_argument('expression', help='Source text to evaluate')

    # run command
    run_parser = subparsers.add_parser('run', parents=[evaluation],
                                       help='Evaluate a script file')
    run_parser.add_argument('file', help='Script file')

    # check command
    check_parser = subparsers.add_parser('check', parents=[common],
                                         help='Check a script for syntax errors')
    check_parser.add_argument('file', help='Script file')
    check_parser.add_argument('--ast', action='store_true',
                              help='Print the syntax tree of each statement')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.action == 'eval':
        return cmd_eval(args)
    elif args.action == 'run':
        return cmd_run(args)
    elif args.action == 'check':
        return cmd_check(args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
