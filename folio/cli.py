#!/usr/bin/env python3
"""
folio - command-line shell over the versioned document store.

A thin front end: every command opens the store, runs one library call
and prints the result. Errors are printed as framed messages and the
exit status is 1.
"""

import sys
import argparse
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from . import config
from .command import USAGE_GUIDE, box, print_command_help, print_error
from .context import ContextBuilder
from .errors import FolioError, NotFoundError, ValidationError
from .folio import Folio
from .log import setup_logging
from .models import NodeKind
from .tokens import get_estimator
from .tree import render_tree

COMMANDS_HELP = """
commands:
  init                  Create the store
  new <name>            Create a work (default structure unless --empty)
  works                 List works
  drop-work <id>        Delete a work and everything in it
  tree <work_id>        Show a work's structure with node IDs
  add <work_id> <title> Add a node (--parent, --kind, --order)
  rename <id> <title>   Rename a node
  delete <id>           Delete a node and its subtree
  show <id>             Print a node's content
  save <id> [content]   Save content (--file, --stdin)
  history <id>          List kept versions of a node
  version <id> <label>  Print one version
  restore <id> <label>  Restore a version (current text is kept)
  select <work_id> [id] Set/show reference nodes for context
  context <work_id>     Print assembled context + token estimate
  tokens [text]         Estimate tokens (--file, --stdin)
  help [command]        Show help (optionally for a specific command)

examples:
  folio init
  folio new "The Long Winter"
  folio tree 1
  folio save 14 --file chapter1.txt
  folio history 14
  folio context 1 --base 14 --prompt "Continue the scene"
"""


def _fmt_time(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime('%Y-%m-%d %H:%M:%S')


def _parse_id(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        print_error('bad_id', {'provided_id': value})
        return None


def _read_text(args, positional: List[str]) -> Optional[str]:
    """Content from --file, --stdin, or the remaining positional args."""
    if args.file:
        try:
            return Path(args.file).read_text(encoding='utf-8')
        except OSError as e:
            print(box("❌ ERROR: Cannot read file", [args.file[:70], str(e)[:76]]))
            return None
    if args.stdin:
        return sys.stdin.read()
    if positional:
        return " ".join(positional)
    return None


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="folio",
        description="folio - Versioned document tree for long-form writing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=COMMANDS_HELP,
    )
    parser.add_argument('command', nargs='?', default='help', metavar='COMMAND',
                        help='Command to run (see commands below)')
    parser.add_argument('args', nargs='*', help='Command arguments')
    parser.add_argument('--db', default=None, help='Store directory (default: $FOLIO_DB or .folio)')
    parser.add_argument('--description', default='', help='Work description (for new)')
    parser.add_argument('--empty', action='store_true', help='Create a work without the default structure')
    parser.add_argument('--parent', default=None, help='Parent node ID (for add)')
    parser.add_argument('--kind', default=NodeKind.CHAPTER.value, help='Node kind (for add)')
    parser.add_argument('--order', type=int, default=None, help='Sort order among siblings (for add)')
    parser.add_argument('--file', default=None, help='Read content from file')
    parser.add_argument('--stdin', action='store_true', help='Read content from stdin')
    parser.add_argument('--nodes', default=None, help='Comma-separated node IDs (for context)')
    parser.add_argument('--base', default=None, help='Node whose content is the working content (for context)')
    parser.add_argument('--prompt', default='', help='Prompt text for the token estimate (for context)')
    parser.add_argument('--clear', action='store_true', help='Clear the selection (for select)')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='More logging (-v info, -vv debug)')

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.command == 'help':
        if args.args:
            print_command_help(args.args[0])
        else:
            print(USAGE_GUIDE)
        return 0

    if args.command == 'tokens':
        text = _read_text(args, args.args)
        if text is None:
            print_error('no_content')
            print_command_help('tokens')
            return 1
        estimator = get_estimator()
        print(f"TOKENS: {estimator.estimate(text)}")
        print(f"METHOD: {'tiktoken (' + estimator.model + ')' if estimator.exact else 'approximate'}")
        return 0

    db_path = Path(args.db or config.default_db_path())
    db_exists = (db_path / "data.lmdb").exists()

    if args.command != 'init' and not db_exists:
        print_error('not_initialized', {'db': str(db_path)})
        return 1

    try:
        db = Folio(str(db_path))
    except FolioError as e:
        print(box("❌ ERROR: Cannot open store", [str(e)[:76]]))
        return 1

    try:
        return _dispatch(db, args, db_exists)
    except ValidationError as e:
        print(box("❌ ERROR: Invalid input", [str(e)[i:i + 76] for i in range(0, len(str(e)), 76)]))
        return 1
    except FolioError as e:
        print(box("❌ ERROR: Store operation failed", [str(e)[:76]]))
        return 1
    finally:
        db.close()


def _dispatch(db: Folio, args, db_exists: bool) -> int:
    command = args.command
    rest = args.args

    if command == 'init':
        if db_exists:
            print(box("ℹ️  STORE ALREADY EXISTS", [
                f"A store already exists at {db.db_path}",
                "",
                "  folio works     # List works",
            ]))
        else:
            print(box("✅ STORE INITIALIZED", [
                f"Created store at {db.db_path}",
                "",
                "NEXT STEP:",
                '  folio new "Work name"',
            ]))
        return 0

    if command == 'new':
        if not rest:
            print_command_help('new')
            print_error('missing_args')
            return 1
        work = db.create_work(" ".join(rest), args.description, initialize=not args.empty)
        print(f"WORK_ID: {work.id}")
        print(render_tree(db.get_tree(work.id), title=work.name))
        return 0

    if command == 'works':
        works = db.list_works()
        if not works:
            print(box("ℹ️  NO WORKS YET", ['  folio new "Work name"']))
            return 0
        for work in works:
            line = f"[{work.id}] {work.name}  (updated {_fmt_time(work.updated_at)})"
            if work.description:
                line += f"\n      {work.description[:70]}"
            print(line)
        return 0

    if command == 'drop-work':
        if not rest:
            print_command_help('drop-work')
            return 1
        work_id = _parse_id(rest[0])
        if work_id is None:
            return 1
        if not db.delete_work(work_id):
            print_error('work_not_found', {'provided_id': work_id})
            return 1
        print(f"✅ Deleted work {work_id}")
        return 0

    if command == 'tree':
        if not rest:
            print_command_help('tree')
            return 1
        work_id = _parse_id(rest[0])
        if work_id is None:
            return 1
        work = db.get_work(work_id)
        if not work:
            print_error('work_not_found', {'provided_id': work_id})
            return 1
        tree = db.get_tree(work_id)
        if not tree:
            print(box("ℹ️  WORK IS EMPTY", [f'  folio add {work_id} "Title"']))
        else:
            print(render_tree(tree, title=work.name))
        return 0

    if command == 'add':
        if len(rest) < 2:
            print_command_help('add')
            print_error('missing_args')
            return 1
        work_id = _parse_id(rest[0])
        if work_id is None:
            return 1
        parent_id = None
        if args.parent is not None:
            parent_id = _parse_id(args.parent)
            if parent_id is None:
                return 1
        title = " ".join(rest[1:])
        sort_order = args.order if args.order is not None else db.next_sort_order(work_id, parent_id)
        try:
            node = db.create_node(work_id, parent_id, args.kind, title, sort_order)
        except NotFoundError as e:
            print(box("❌ ERROR: Cannot add node", [str(e)[:76], "", f"  folio tree {work_id}"]))
            return 1
        print(f"NODE_ID: {node.id}")
        print(f'✅ Added "{node.title}" ({node.kind.value}) under {parent_id if parent_id else "work root"}')
        return 0

    if command == 'rename':
        if len(rest) < 2:
            print_command_help('rename')
            return 1
        node_id = _parse_id(rest[0])
        if node_id is None:
            return 1
        if not db.rename_node(node_id, " ".join(rest[1:])):
            print_error('node_not_found', {'provided_id': node_id})
            return 1
        print(f"✅ Renamed node {node_id}")
        return 0

    if command == 'delete':
        if not rest:
            print_command_help('delete')
            return 1
        node_id = _parse_id(rest[0])
        if node_id is None:
            return 1
        if not db.delete_node(node_id):
            print_error('node_not_found', {'provided_id': node_id})
            return 1
        print(f"✅ Deleted node {node_id} and its subtree")
        return 0

    if command == 'show':
        if not rest:
            print_command_help('show')
            return 1
        node_id = _parse_id(rest[0])
        if node_id is None:
            return 1
        node = db.get_node(node_id)
        if not node:
            print_error('node_not_found', {'provided_id': node_id})
            return 1
        record = db.get_content_record(node_id)
        print(f"# [{node.id}] {node.title} ({node.kind.value})")
        print(f"Updated: {_fmt_time(record.updated_at) if record else 'never'}")
        print("─" * 80)
        print(record.content if record else "")
        print("─" * 80)
        return 0

    if command == 'save':
        if not rest:
            print_command_help('save')
            return 1
        node_id = _parse_id(rest[0])
        if node_id is None:
            return 1
        text = _read_text(args, rest[1:])
        if text is None:
            print_error('no_content')
            print_command_help('save')
            return 1
        result = db.save_content(node_id, text)
        if not result.success:
            print_error('node_not_found', {'provided_id': node_id})
            return 1
        print(f"✅ {result.message}")
        if result.versioned():
            print(f"SNAPSHOT: {result.snapshot}")
        return 0

    if command == 'history':
        if not rest:
            print_command_help('history')
            return 1
        node_id = _parse_id(rest[0])
        if node_id is None:
            return 1
        if not db.get_node(node_id):
            print_error('node_not_found', {'provided_id': node_id})
            return 1
        versions = db.versions.list(node_id)
        if not versions:
            print(box(f"ℹ️  NO VERSIONS FOR NODE {node_id}", [
                "Versions are kept when saved content changes.",
            ]))
            return 0
        print(f"📜 VERSION HISTORY: [{node_id}] ({len(versions)} kept, newest first)\n")
        for info in versions:
            preview = info.preview[:60].replace('\n', ' ')
            print(f"  {info.label}  {_fmt_time(info.created_at)}  {preview}")
        print(f"\n💡 To restore: folio restore {node_id} <label>")
        return 0

    if command == 'version':
        if len(rest) < 2:
            print_command_help('version')
            return 1
        node_id = _parse_id(rest[0])
        if node_id is None:
            return 1
        text = db.versions.get(node_id, rest[1])
        if text is None:
            print_error('version_not_found', {'node_id': node_id, 'label': rest[1]})
            return 1
        print(text)
        return 0

    if command == 'restore':
        if len(rest) < 2:
            print_command_help('restore')
            return 1
        node_id = _parse_id(rest[0])
        if node_id is None:
            return 1
        label = rest[1]
        if not db.versions.restore(node_id, label):
            print_error('version_not_found', {'node_id': node_id, 'label': label})
            return 1
        print(box("✅ VERSION RESTORED", [
            f"Node {node_id} now has the text of version {label}.",
            "The replaced text was kept as a new version:",
            f"  folio history {node_id}",
        ]))
        return 0

    if command == 'select':
        if not rest:
            print_command_help('select')
            return 1
        work_id = _parse_id(rest[0])
        if work_id is None:
            return 1
        if not db.get_work(work_id):
            print_error('work_not_found', {'provided_id': work_id})
            return 1
        if args.clear:
            db.save_selection(work_id, [])
        elif len(rest) > 1:
            ids = [_parse_id(v) for v in rest[1:]]
            if any(i is None for i in ids):
                return 1
            db.save_selection(work_id, ids)
        selection = db.get_selection(work_id)
        print(f"SELECTED: {' '.join(str(i) for i in selection) if selection else '(none)'}")
        return 0

    if command == 'context':
        if not rest:
            print_command_help('context')
            return 1
        work_id = _parse_id(rest[0])
        if work_id is None:
            return 1
        if not db.get_work(work_id):
            print_error('work_not_found', {'provided_id': work_id})
            return 1

        if args.nodes:
            ids = [_parse_id(v.strip()) for v in args.nodes.split(',') if v.strip()]
            if any(i is None for i in ids):
                return 1
        else:
            ids = db.get_selection(work_id)

        base = ""
        if args.base is not None:
            base_id = _parse_id(args.base)
            if base_id is None:
                return 1
            base = db.get_content(base_id)

        tree = db.get_tree(work_id)
        builder = ContextBuilder(db)
        print(builder.full_context(base, ids, tree))
        budget = builder.estimate(args.prompt, base, ids, tree)
        print(
            f"TOKENS: {budget.total} (prompt {budget.prompt_tokens}, context {budget.context_tokens})",
            file=sys.stderr,
        )
        return 0

    print_error('unknown_command')
    print(f"\nYou entered: '{command}'")
    return 1


if __name__ == "__main__":
    sys.exit(main())
