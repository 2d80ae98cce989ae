"""CLI for HaloPSA Sync.

Usage:
    python -m halopsa_sync test                    Test HaloPSA credentials and API access
    python -m halopsa_sync config                  Show current config
    python -m halopsa_sync serve                   Run the API server (development)
    python -m halopsa_sync push-project <id>       Push a project to its ticket
    python -m halopsa_sync push-task <id>          Push a task as a note on its project's ticket
    python -m halopsa_sync pull-ticket <id>        Pull a ticket into its linked project
    python -m halopsa_sync full-sync <id>          Show a project's ticket and actions
    python -m halopsa_sync clients                 List HaloPSA clients and their local mapping
    python -m halopsa_sync audit [--limit N]       Show recent audit entries
"""

import argparse
import json
import sys

from .config import config
from .exceptions import HaloSyncError
from .logging_setup import setup_logging


def _engine():
    from .audit import AuditLogger
    from .db import SQLiteEntityStore
    from .sync_engine import SyncEngine

    store = SQLiteEntityStore(config.DB_PATH)
    # Short-lived process: write audit entries inline so none are lost on exit
    return SyncEngine(store, audit=AuditLogger(store, synchronous=True))


def _print_result(result: dict) -> None:
    print(json.dumps(result, indent=2, default=str))


def cmd_test() -> int:
    """Test HaloPSA credentials and API access."""
    print("Testing HaloPSA connection...\n")
    errors = config.validate()
    if errors:
        print("Configuration warnings:")
        for e in errors:
            print(f"  - {e}")
        print()

    result = _engine().test_connection()
    print(f"  {result['message']}")
    print(f"  Auth server: {result['authUrl']}")
    print(f"  API server:  {result['apiUrl']}")
    return 0


def cmd_config() -> int:
    """Show current configuration (secrets masked)."""
    print("=== HaloPSA Sync Configuration ===\n")
    print(f"  Environment:    {config.ENV}")
    print(f"  Client ID:      {config.HALOPSA_CLIENT_ID or '(from settings record)'}")
    print(f"  Client secret:  {'set' if config.HALOPSA_CLIENT_SECRET else 'NOT SET'}")
    print(f"  Tenant:         {config.HALOPSA_TENANT or '-'}")
    print(f"  Database:       {config.DB_PATH}")
    print(f"  HTTP timeout:   {config.HTTP_TIMEOUT}s")
    print(f"  Token TTL/skew: {config.TOKEN_TTL}s / {config.TOKEN_SKEW}s")
    print(f"  Ticket type:    {config.TICKET_TYPE}")
    print(f"  API:            {config.API_HOST}:{config.API_PORT} (key {'set' if config.API_KEY else 'not set'})")
    return 0


def cmd_serve() -> int:
    """Run the Flask development server."""
    from .api import create_app

    app = create_app()
    # Single process so entity locks cover every request
    app.run(host=config.API_HOST, port=config.API_PORT, threaded=True, use_reloader=False)
    return 0


def cmd_audit(limit: int) -> int:
    """Show recent audit entries."""
    from .db import SQLiteEntityStore

    entries = SQLiteEntityStore(config.DB_PATH).list('AuditLog', limit=limit)
    if not entries:
        print("No sync activity recorded.")
        return 0

    for entry in entries:
        status = "✓" if entry.get('outcome') == 'success' else "✗"
        print(f"  {status} {entry.get('created_date')}: {entry.get('action')} "
              f"{entry.get('entity_type')} {entry.get('entity_id')} - {entry.get('details')}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog='python -m halopsa_sync',
        description='HaloPSA ticket sync',
    )
    sub = parser.add_subparsers(dest='command')

    sub.add_parser('test', help='Test HaloPSA credentials and API access')
    sub.add_parser('config', help='Show current config')
    sub.add_parser('serve', help='Run the API server')
    sub.add_parser('clients', help='List HaloPSA clients and their local mapping')

    for name, arg, help_text in (
        ('push-project', 'project_id', 'Push a project to its ticket'),
        ('push-task', 'task_id', "Push a task as a note on its project's ticket"),
        ('pull-ticket', 'ticket_id', 'Pull a ticket into its linked project'),
        ('full-sync', 'project_id', "Show a project's ticket and actions"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument(arg)

    p = sub.add_parser('audit', help='Show recent audit entries')
    p.add_argument('--limit', type=int, default=20)

    args = parser.parse_args()
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == 'test':
            return cmd_test()
        if args.command == 'config':
            return cmd_config()
        if args.command == 'serve':
            return cmd_serve()
        if args.command == 'audit':
            return cmd_audit(args.limit)

        engine = _engine()
        if args.command == 'clients':
            _print_result(engine.list_clients())
        elif args.command == 'push-project':
            _print_result(engine.push_project_update(args.project_id))
        elif args.command == 'push-task':
            _print_result(engine.push_task_update(args.task_id))
        elif args.command == 'pull-ticket':
            _print_result(engine.pull_ticket_update(args.ticket_id))
        elif args.command == 'full-sync':
            _print_result(engine.full_sync(args.project_id))
        return 0

    except HaloSyncError as e:
        print(f"ERROR: {e.message}")
        if e.details:
            print(f"  {e.details}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
