#!/usr/bin/env python3
"""
Command-line interface for Folio - static site generator.
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .core import Folio


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(prog='folio', description='Folio - Static Site Generator')
    parser.add_argument('--input', '-i', type=str, default='.',
                        help='Site directory to build (default: current directory)')
    parser.add_argument('--dev', action='store_true',
                        help='Build for the local dev server address instead of the production domain')
    parser.add_argument('--serve', action='store_true',
                        help='Serve the built site on the dev address after building')
    parser.add_argument('--clearCache', '--clear-cache', dest='clear_cache', action='store_true',
                        help='Delete the cache (resized images etc.) before building')
    parser.add_argument('--noImageCacheCheck', '--no-image-cache-check', dest='no_image_cache_check',
                        action='store_true',
                        help='Only regenerate images whose cached output is missing')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Show progress messages and every collected error')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def args_to_settings(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Convert parsed arguments into the overrides FolioSettings understands.

    Args:
        args: Parsed arguments

    Returns:
        Dict of overrides; flags that were not given are left out
    """
    overrides = {}
    for key in ('dev', 'clear_cache', 'no_image_cache_check', 'verbose'):
        if getattr(args, key):
            overrides[key] = True
    return overrides


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        generator = Folio(args.input, dev=args.dev, args=args_to_settings(args))
        exit_code = generator.build()
        if args.serve and exit_code == 0:
            generator.serve()
    except Exception as e:
        logging.getLogger('Folio').debug("Fatal error", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == '__main__':
    main()
