"""
coprede/cli.py
Command-line interface for the COP Rede panel.
Ingests an exported batch of chat messages into the panel database.

USAGE:
  python -m coprede.cli --input messages.json --output ./coprede.db
  python -m coprede.cli --input export.jsonl --output ./coprede.db --run-label "turno 26/01"
  python -m coprede.cli --input messages.json --dry-run

INPUT FORMATS:
  .json   a list of message descriptors, or {"messages": [...]}
  .jsonl  one descriptor per line
  Each descriptor: {"text": "...", "message_id": "...", "date": <epoch seconds>, "sender": "..."}
"""

import argparse
import json
import logging
import sys
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List

from coprede.config import build_parser_config, load_config, retention_limits
from coprede.dispatcher import MessageDispatcher
from coprede.exporters.sqlite_exporter import export, record_to_dict, table_for
from coprede.models.record import ParseErrorRecord

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'


def load_messages(path: Path) -> List[Dict[str, Any]]:
    """Read message descriptors from a .json or .jsonl file."""
    raw = path.read_text(encoding='utf-8')
    if path.suffix.lower() == '.jsonl':
        return [json.loads(line) for line in raw.splitlines() if line.strip()]

    data = json.loads(raw)
    if isinstance(data, dict):
        data = data.get('messages', [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of messages")
    return data


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog            = 'coprede',
        description     = 'COP Rede panel: network incident message ingestion',
        formatter_class = argparse.RawDescriptionHelpFormatter,
        epilog          = """
Messages already stored (same message_id) are skipped.
Messages that are not summaries, alerts or HUB allocations are ignored.
        """
    )

    parser.add_argument(
        '--input', '-i',
        required = True,
        type     = Path,
        help     = 'JSON or JSONL file with message descriptors',
    )
    parser.add_argument(
        '--output', '-o',
        default = None,
        type    = Path,
        help    = 'Output SQLite database path (default: db_path from config)',
    )
    parser.add_argument(
        '--config', '-c',
        default = None,
        type    = Path,
        help    = 'Path to coprede_config.json',
    )
    parser.add_argument(
        '--run-label',
        default = '',
        help    = 'Label for this run (stored in ingest_meta table)',
    )
    parser.add_argument(
        '--dry-run', '-n',
        action  = 'store_true',
        help    = 'Parse and print records as JSON; write nothing',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )

    args = parser.parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    # ── VALIDATE INPUT ───────────────────────────────────────
    if not args.input.exists():
        _print(f"{RED}Error: File not found: {args.input}{RESET}")
        sys.exit(1)

    config  = load_config(path=args.config)
    db_path = args.output or Path(config['db_path'])

    _banner()
    _print(f"Input file       : {CYAN}{args.input}{RESET}")
    _print(f"Output database  : {CYAN}{'(dry run)' if args.dry_run else db_path}{RESET}")
    _print("")

    # ── LOAD ─────────────────────────────────────────────────
    _step("Reading messages...")
    try:
        messages = load_messages(args.input)
    except (ValueError, OSError) as e:
        _print(f"{RED}Error: {e}{RESET}")
        sys.exit(1)
    _ok(f"{len(messages)} message(s) read")

    # ── PARSE ────────────────────────────────────────────────
    _step("Classifying and parsing...")
    t0         = time.time()
    dispatcher = MessageDispatcher(build_parser_config(config))
    records    = []
    ignored    = 0
    for message in messages:
        record = dispatcher.dispatch(message)
        if record is None:
            ignored += 1
        else:
            records.append(record)
    _ok(f"{len(records)} record(s) in {_elapsed(t0)}, {ignored} ignored")

    by_table = Counter(table_for(r) for r in records)
    errors   = sum(1 for r in records if isinstance(r, ParseErrorRecord))

    if args.dry_run:
        print(json.dumps([record_to_dict(r) for r in records], ensure_ascii=False, indent=2))
        return

    # ── EXPORT ───────────────────────────────────────────────
    _step("Writing SQLite database...")
    t0 = time.time()
    inserted = export(
        db_path   = db_path,
        records   = records,
        run_label = args.run_label or str(args.input),
        limits    = retention_limits(config),
    )
    _ok(f"Database written in {_elapsed(t0)}")

    # ── SUMMARY ──────────────────────────────────────────────
    _print(f"\n{BOLD}{GREEN}✓ Complete{RESET}")
    for table, count in sorted(by_table.items()):
        skipped = count - inserted.get(table, 0)
        note    = f" ({skipped} already stored)" if skipped else ""
        _print(f"  {table:<20}: {inserted.get(table, 0):,}{note}")
    _print(f"  Database            : {db_path.resolve()}")

    if errors:
        _print(f"\n{YELLOW}⚠ {errors} message(s) failed to parse; see parse_errors table.{RESET}")


# ── PRINT HELPERS ────────────────────────────────────────────

def _banner():
    _print(f"""
{BOLD}{CYAN}
  COP REDE · Painel de Incidentes
  Resumos | Alertas | Alocação HUB
{RESET}""")

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg, file=sys.stderr)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    main()
