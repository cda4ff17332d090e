"""
Command-line interface for scriptmanager
"""

import argparse
import json
import logging
import os
import sys

from . import __version__
from .core_service import CoreService
from .monitor import setup_monitoring, log_event, tail_events
from .parser import MetadataParser
from .shared_config import ensure_app_directories
from .utils import sanitize


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog='scriptmanager',
        description='Userscript and userstyle manager',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s list
  %(prog)s resolve https://example.com/page
  %(prog)s code https://example.com/page --frame
  %(prog)s save ./my-script.user.js
  %(prog)s disable "My Script.js"
  %(prog)s check-updates
        '''
    )

    parser.add_argument(
        '--monitor',
        action='store_true',
        help='Echo log events to stderr while the command runs'
    )

    parser.add_argument(
        '--monitor-file',
        type=str,
        help='Custom log file path (default: ~/.scriptmanager/logs/events.log)'
    )

    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    sub = parser.add_subparsers(dest='command', metavar='COMMAND')

    sub.add_parser('list', help='List saved scripts and styles')

    p = sub.add_parser('resolve', help='Show filenames injected into a url')
    p.add_argument('url')

    p = sub.add_parser('code', help='Show the code injected into a url')
    p.add_argument('url')
    p.add_argument('--frame', action='store_true',
                   help='Resolve for a subframe instead of the top frame')

    p = sub.add_parser('save', help='Save a file into the save location')
    p.add_argument('file', help='Path of a .js or .css file with a metablock')

    p = sub.add_parser('trash', help='Remove a saved file')
    p.add_argument('name', help='Filename in the save location')

    p = sub.add_parser('enable', help='Enable a saved file')
    p.add_argument('name')

    p = sub.add_parser('disable', help='Disable a saved file')
    p.add_argument('name')

    sub.add_parser('check-updates', help='List files with a newer remote version')
    sub.add_parser('update', help='Apply all available remote updates')
    sub.add_parser('purge', help='Rebuild the manifest from the save location')

    p = sub.add_parser('install-check', help='Tell whether a file would install or re-install')
    p.add_argument('file')

    p = sub.add_parser('logs', help='Print the last log events')
    p.add_argument('--limit', '-n', type=int, default=50)

    return parser


def _print(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _read_file(path):
    if not os.path.exists(path):
        log_event('cli.error', f'File not found: {path}', logging.ERROR)
        print(f"Error: File not found: {path}", file=sys.stderr)
        return None
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def run_cli(args=None, service=None):
    """Run the CLI"""
    parser = create_parser()
    args = parser.parse_args(args)

    setup_monitoring(log_file=args.monitor_file, echo=args.monitor)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == 'logs':
        for line in tail_events(args.limit, log_file=args.monitor_file):
            print(line)
        return 0

    log_event('cli.start', f'command {args.command}')
    if service is None:
        ensure_app_directories()
        service = CoreService()
    if service.popup_init() is None:
        print("Error: could not initialize the save location", file=sys.stderr)
        return 1

    if args.command == 'list':
        files = service.get_all_files()
        if files is None:
            return 1
        _print([{
            'filename': f.filename,
            'name': f.name,
            'type': f.type,
            'disabled': f.disabled,
            'canUpdate': f.can_update,
        } for f in files])
        return 0

    if args.command == 'resolve':
        filenames = service.resolve(args.url)
        if filenames is None:
            print(f"Error: invalid url: {args.url}", file=sys.stderr)
            return 1
        _print(filenames)
        return 0

    if args.command == 'code':
        plan = service.get_injection(args.url, is_top=not args.frame)
        if plan is None:
            print(f"Error: invalid url: {args.url}", file=sys.stderr)
            return 1
        _print(plan)
        return 0

    if args.command == 'save':
        content = _read_file(args.file)
        if content is None:
            return 1
        file_type = 'css' if args.file.endswith('.css') else 'js'
        parsed = MetadataParser.parse(content)
        # saving under the current name overwrites an existing copy
        filename = f'{sanitize(parsed.name)}.{file_type}' if parsed else ''
        result = service.save_file({'filename': filename, 'type': file_type}, content)
        _print(result)
        return 1 if 'error' in result else 0

    if args.command == 'install-check':
        content = _read_file(args.file)
        if content is None:
            return 1
        result = service.install_check(content)
        if result is None:
            return 1
        _print(result)
        return 1 if 'error' in result else 0

    if args.command == 'trash':
        return 0 if service.trash_file({'filename': args.name}) else 1

    if args.command in ('enable', 'disable'):
        return 0 if service.toggle_file(args.name, args.command) else 1

    if args.command == 'check-updates':
        updates = service.check_updates()
        if updates is None:
            print("Error: could not check for updates, see the log", file=sys.stderr)
            return 1
        _print(updates)
        return 0

    if args.command == 'update':
        return 0 if service.update_all() else 1

    if args.command == 'purge':
        return 0 if service.refresh_manifest() else 1

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(run_cli())
