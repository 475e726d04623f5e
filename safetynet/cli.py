"""
safetynet/cli.py
Command-line interface for SafetyNet.

USAGE:
  safetynet init-db
  safetynet filter "some outgoing message"
  safetynet moderate "Can you send me your bank account number?"
  safetynet classify "He threatened me" --external
  safetynet scan MESSAGE_ID "stored message text"
  safetynet send "hello" --sender u1 --receiver u2
  safetynet report --reporter u1 --subject "Chat" --description "..."
  safetynet suggest --days 30 --save
  safetynet suggestions list | accept ID | reject ID
  safetynet keywords add "gift card" --category "Financial Exploitation" --severity High
  safetynet keywords list | delete ID
  safetynet stats

Database and classifier settings come from safetynet_config.json
(override the database with --db).
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from safetynet.config import ensure_config
from safetynet.models.record import SEVERITY_ORDER, VALID_CATEGORIES
from safetynet.services.keyword_service import NotFoundError
from safetynet.storage.sqlite_store import init_db

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'

SEVERITY_COLOR = {
    'Critical': RED,
    'High':     RED,
    'Medium':   YELLOW,
    'Low':      GREEN,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'safetynet',
        description = 'SafetyNet: message moderation, keyword detection and report triage',
        formatter_class = argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '--db',
        type    = Path,
        default = None,
        help    = 'SQLite database path (default: db_path from config)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )

    sub = parser.add_subparsers(dest='command', metavar='COMMAND')
    sub.required = True

    sub.add_parser('init-db', help='Create the database schema')

    p = sub.add_parser('filter', help='Blocklist check for one message')
    p.add_argument('text')

    p = sub.add_parser('moderate', help='Allow / warn / block decision for one message')
    p.add_argument('text')
    p.add_argument('--sender',   default='')
    p.add_argument('--receiver', default='')
    p.add_argument('--session',  default='')

    p = sub.add_parser('classify', help='Severity of a safety report description')
    p.add_argument('text')
    p.add_argument(
        '--external',
        action = 'store_true',
        help   = 'Try the configured external classifier first (falls back to rules)',
    )

    p = sub.add_parser('scan', help='Corpus scan of a stored message; logs detections')
    p.add_argument('message_id')
    p.add_argument('text')

    p = sub.add_parser('send', help='Moderate, store and scan a message')
    p.add_argument('text')
    p.add_argument('--sender',   required=True)
    p.add_argument('--receiver', required=True)
    p.add_argument('--session',  default='')

    p = sub.add_parser('report', help='Submit a safety report')
    p.add_argument('--reporter',      required=True)
    p.add_argument('--subject',       default='')
    p.add_argument('--description',   required=True)
    p.add_argument('--reported-user', default=None)
    p.add_argument('--external',      action='store_true')

    p = sub.add_parser('suggest', help='Mine message history for keyword suggestions')
    p.add_argument('--days', type=int, default=None, help='Days of history (default: from config)')
    p.add_argument('--save', action='store_true', help='Store candidates as pending suggestions')

    p  = sub.add_parser('suggestions', help='Review pending suggestions')
    sp = p.add_subparsers(dest='action', metavar='ACTION')
    sp.required = True
    sp.add_parser('list')
    a = sp.add_parser('accept')
    a.add_argument('suggestion_id')
    a.add_argument('--no-promote', action='store_true', help='Resolve without adding to the corpus')
    r = sp.add_parser('reject')
    r.add_argument('suggestion_id')

    p  = sub.add_parser('keywords', help='Manage the keyword corpus')
    kp = p.add_subparsers(dest='action', metavar='ACTION')
    kp.required = True
    add = kp.add_parser('add')
    add.add_argument('phrase')
    add.add_argument('--category', required=True, choices=sorted(VALID_CATEGORIES))
    add.add_argument('--severity', required=True, type=str.capitalize, choices=list(SEVERITY_ORDER))
    kp.add_parser('list')
    d = kp.add_parser('delete')
    d.add_argument('keyword_id')

    sub.add_parser('stats', help='Dashboard statistics')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config  = ensure_config()
    db_path = args.db or Path(config['db_path'])

    if args.command == 'init-db':
        init_db(db_path)
        _ok(f"Database ready: {db_path}")
        return 0

    # Deferred so --help and init-db stay light
    from safetynet.api import SafetyAPI
    api = SafetyAPI(db_path=db_path, config=config)

    try:
        return _dispatch(api, args)
    except NotFoundError as e:
        _print(f"{RED}Not found: {e}{RESET}")
        return 1
    except ValueError as e:
        _print(f"{RED}Error: {e}{RESET}")
        return 2


def _dispatch(api, args) -> int:
    cmd = args.command

    if cmd == 'filter':
        result = api.filter_message(args.text)
        if result['is_blocked']:
            _print(f"{RED}BLOCKED{RESET}  matched: {result['blocked_word']}")
            _print(f"  {result['reason']}")
            return 1
        _ok("Not blocked")
        return 0

    if cmd == 'moderate':
        result = api.moderate(args.text, args.sender, args.receiver, args.session)
        _print_moderation(result)
        return 0 if result['is_allowed'] else 1

    if cmd == 'classify':
        if args.external:
            result = asyncio.run(api.classify_with_external(args.text))
        else:
            result = api.classify(args.text)
        level = result['severity']
        _print(f"Severity: {SEVERITY_COLOR.get(level, '')}{BOLD}{level}{RESET}")
        return 0

    if cmd == 'scan':
        result = api.scan(args.message_id, args.text)
        if not result['detected']:
            _ok("No keywords detected")
            return 0
        _print(f"{BOLD}{len(result['matches'])} keyword(s) detected:{RESET}")
        for m in result['matches']:
            kw = m['keyword']
            _print(f"  • {kw['phrase']} [{kw['category']}, {kw['severity']}]  \"{m['context']}\"")
        return 0

    if cmd == 'send':
        result = api.send_message(args.text, args.sender, args.receiver, args.session)
        _print_moderation(result['moderation'])
        if result['sent']:
            _ok(f"Stored as {result['message_id']}")
            hits = result['detections']['matches']
            if hits:
                _print(f"  {YELLOW}{len(hits)} keyword detection(s) logged{RESET}")
            return 0
        return 1

    if cmd == 'report':
        report = api.submit_report(
            reporter_id      = args.reporter,
            subject          = args.subject,
            description      = args.description,
            reported_user_id = args.reported_user,
            use_external     = args.external,
        )
        level = report['severity_level']
        _ok(f"Report {report['id']} stored")
        _print(f"  Severity: {SEVERITY_COLOR.get(level, '')}{BOLD}{level}{RESET}")
        return 0

    if cmd == 'suggest':
        result = api.generate_suggestions(days_back=args.days, save=args.save)
        _print(f"{BOLD}{result['count']} suggestion(s) from the last {result['days_back']} day(s){RESET}")
        for s in result['suggestions']:
            _print(f"  {s['frequency']:>4}×  {s['phrase']}  [{s['category']}, {s['severity']}]")
        if args.save:
            _ok(f"{result['saved']} saved as pending")
        return 0

    if cmd == 'suggestions':
        if args.action == 'list':
            rows = api.list_suggestions()
            if not rows:
                _print("No pending suggestions")
            for s in rows:
                _print(f"  {s['id']}  {s['keyword']}  [{', '.join(s['badges'])}]")
                _print(f"      {s['detection_summary']}")
            return 0
        if args.action == 'accept':
            result = api.accept_suggestion(args.suggestion_id, promote=not args.no_promote)
            kw = result['keyword']
            _ok(f"Accepted{' → keyword ' + kw['id'] if kw else ''}")
            return 0
        api.reject_suggestion(args.suggestion_id)
        _ok("Rejected")
        return 0

    if cmd == 'keywords':
        if args.action == 'add':
            kw = api.add_keyword(args.phrase, args.category, args.severity)
            _ok(f"Added {kw['id']}  {kw['phrase']}")
            return 0
        if args.action == 'list':
            rows = api.list_keywords()
            _print(f"{BOLD}{len(rows)} active keyword(s){RESET}")
            for kw in rows:
                _print(f"  {kw['id']}  {kw['phrase']}  [{kw['category']}, {kw['severity']}]")
            return 0
        api.delete_keyword(args.keyword_id)
        _ok(f"Deactivated {args.keyword_id}")
        return 0

    if cmd == 'stats':
        stats = api.stats()
        dash  = stats['dashboard']
        det   = stats['detections']
        _print(f"{BOLD}Keyword corpus{RESET}")
        _print(f"  Active keywords     : {dash['total_keywords']}")
        _print(f"  Added this week     : {dash['added_this_week']}")
        _print(f"  Pending suggestions : {dash['pending_suggestions']}")
        _print(f"{BOLD}Detections{RESET}")
        _print(f"  Today     : {det['today']}")
        _print(f"  This week : {det['this_week']}")
        _print(f"  Total     : {det['total']}")
        return 0

    raise ValueError(f"Unknown command: {cmd}")


# ── PRINT HELPERS ────────────────────────────────────────────

def _print_moderation(result) -> None:
    verdict = result['severity']
    color   = {'blocked': RED, 'warning': YELLOW}.get(verdict, GREEN)
    _print(f"{color}{BOLD}{verdict.upper()}{RESET}  action: {result['suggested_action']}")
    if result.get('reason'):
        _print(f"  {result['reason']}")
    if result.get('detected_issues'):
        _print(f"  issues: {', '.join(result['detected_issues'])}")
    if result.get('admin_notification_required'):
        _print(f"  {YELLOW}admin notification required{RESET}")

def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)


if __name__ == '__main__':
    sys.exit(main())
