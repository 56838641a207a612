"""folio.command - Help texts and framed messages for the CLI"""

from typing import List, Optional

WIDTH = 76


def box(title: str, lines: Optional[List[str]] = None) -> str:
    """Frame a title and body lines in an 80-column box."""
    out = ["╔" + "═" * (WIDTH + 2) + "╗", f"║ {title[:WIDTH]:<{WIDTH}} ║"]
    if lines:
        out.append("╠" + "═" * (WIDTH + 2) + "╣")
        for line in lines:
            out.append(f"║ {line[:WIDTH]:<{WIDTH}} ║")
    out.append("╚" + "═" * (WIDTH + 2) + "╝")
    return "\n".join(out)


USAGE_GUIDE = """[folio - Versioned document tree for long-form writing]

QUICK REFERENCE (prefix all with 'folio'):
  folio init                                  # Create the store (.folio/)
  folio new "My Novel"                        # New work with default structure
  folio works                                 # List works
  folio tree <work_id>                        # Structure with node IDs
  folio add <work_id> "Chapter 2" --parent <id> --kind chapter
  folio rename <node_id> "New title"
  folio delete <node_id>                      # Removes the whole subtree
  folio show <node_id>                        # Current content
  folio save <node_id> "text" | --file <path> | --stdin
  folio history <node_id>                     # Saved versions (newest first)
  folio version <node_id> <label>             # Text of one version
  folio restore <node_id> <label>             # Restore (current text is kept as a version)
  folio select <work_id> <id> <id> ...        # Reference nodes for context
  folio context <work_id> [--base <node_id>] [--prompt "..."]
  folio tokens "text" | --file <path> | --stdin

NOTES:
  - Every save that changes existing text keeps the previous text as a version.
  - At most 10 versions are kept per node; the oldest go first.
  - Use --db <dir> or FOLIO_DB to pick a store other than ./.folio"""


COMMAND_HELP = {
    'init': box("COMMAND: init", [
        "PURPOSE: Create an empty store",
        "",
        "USAGE:",
        "  folio init",
        "  folio init --db /path/to/store",
        "",
        "NEXT STEP:",
        '  folio new "Work name"',
    ]),
    'new': box("COMMAND: new", [
        "PURPOSE: Create a work (seeded with the default structure)",
        "",
        "USAGE:",
        '  folio new <name> [--description "..."] [--empty]',
        "",
        "OPTIONS:",
        "  --description   Short description of the work",
        "  --empty         Do not seed the default structure",
    ]),
    'works': box("COMMAND: works", [
        "PURPOSE: List works, most recently updated first",
        "",
        "USAGE:",
        "  folio works",
    ]),
    'drop-work': box("COMMAND: drop-work", [
        "PURPOSE: Delete a work with all of its nodes, contents and versions",
        "",
        "USAGE:",
        "  folio drop-work <work_id>",
    ]),
    'tree': box("COMMAND: tree", [
        "PURPOSE: Show a work's structure with node IDs and previews",
        "",
        "USAGE:",
        "  folio tree <work_id>",
    ]),
    'add': box("COMMAND: add", [
        "PURPOSE: Add a node to a work",
        "",
        "USAGE:",
        "  folio add <work_id> <title> [--parent <id>] [--kind <kind>] [--order <n>]",
        "",
        "OPTIONS:",
        "  --parent   Parent node ID (default: new root node)",
        "  --kind     Node kind (default: chapter)",
        "  --order    Sort order among siblings (default: after the last sibling)",
    ]),
    'rename': box("COMMAND: rename", [
        "PURPOSE: Change a node's title",
        "",
        "USAGE:",
        "  folio rename <node_id> <title>",
    ]),
    'delete': box("COMMAND: delete", [
        "PURPOSE: Delete a node and everything below it",
        "",
        "USAGE:",
        "  folio delete <node_id>",
    ]),
    'show': box("COMMAND: show", [
        "PURPOSE: Print a node's current content",
        "",
        "USAGE:",
        "  folio show <node_id>",
    ]),
    'save': box("COMMAND: save", [
        "PURPOSE: Replace a node's content",
        "",
        "USAGE:",
        '  folio save <node_id> "new content"',
        "  folio save <node_id> --file <path>",
        "  cat draft.txt | folio save <node_id> --stdin",
        "",
        "The previous text is kept as a version when it changes.",
    ]),
    'history': box("COMMAND: history", [
        "PURPOSE: List saved versions of a node, newest first",
        "",
        "USAGE:",
        "  folio history <node_id>",
    ]),
    'version': box("COMMAND: version", [
        "PURPOSE: Print the text of one version",
        "",
        "USAGE:",
        "  folio version <node_id> <label>",
    ]),
    'restore': box("COMMAND: restore", [
        "PURPOSE: Bring back the text of a version",
        "",
        "USAGE:",
        "  folio restore <node_id> <label>",
        "",
        "The text being replaced is kept as a new version, so a restore",
        "can itself be undone with another restore.",
    ]),
    'select': box("COMMAND: select", [
        "PURPOSE: Set or show the reference nodes used for context",
        "",
        "USAGE:",
        "  folio select <work_id>                 # Show current selection",
        "  folio select <work_id> <id> [<id> ...] # Replace selection",
        "  folio select <work_id> --clear         # Clear selection",
    ]),
    'context': box("COMMAND: context", [
        "PURPOSE: Print the assembled context and its token estimate",
        "",
        "USAGE:",
        "  folio context <work_id> [--nodes 3,5,9] [--base <node_id>] [--prompt \"...\"]",
        "",
        "OPTIONS:",
        "  --nodes    Comma-separated node IDs (default: saved selection)",
        "  --base     Node whose content is the working content",
        "  --prompt   Prompt text to include in the token estimate",
    ]),
    'tokens': box("COMMAND: tokens", [
        "PURPOSE: Estimate the token count of a text",
        "",
        "USAGE:",
        '  folio tokens "some text"',
        "  folio tokens --file <path>",
        "  cat text.txt | folio tokens --stdin",
    ]),
}


ERROR_PROMPTS = {
    'not_initialized': box("❌ STORE NOT INITIALIZED", [
        "No store was found. Create one first:",
        "  folio init",
        "",
        "Or point at an existing store with --db <dir> or FOLIO_DB.",
    ]),
    'missing_args': box("❌ ERROR: Missing arguments", [
        "This command needs more arguments. See the usage above.",
    ]),
    'bad_id': box("❌ ERROR: IDs must be whole numbers", [
        "Work and node IDs are the numbers shown by `folio works`",
        "and `folio tree <work_id>`.",
    ]),
    'work_not_found': box("❌ ERROR: Work not found", [
        "List existing works with:",
        "  folio works",
    ]),
    'node_not_found': box("❌ ERROR: Node not found", [
        "COMMON CAUSES:",
        "  - Typo in node_id",
        "  - The node (or one of its ancestors) was deleted",
        "",
        "Find node IDs with:",
        "  folio tree <work_id>",
    ]),
    'version_not_found': box("❌ ERROR: Version not found", [
        "The label does not match any kept version of this node.",
        "List kept versions with:",
        "  folio history <node_id>",
    ]),
    'no_content': box("❌ ERROR: No content given", [
        "Pass the content as an argument, or use --file <path> or --stdin.",
    ]),
    'unknown_command': box("❌ ERROR: Unknown command", [
        "VALID COMMANDS:",
        "  init, new, works, drop-work, tree, add, rename, delete,",
        "  show, save, history, version, restore, select, context, tokens, help",
        "",
        "Get help for any command:",
        "  folio help <command>",
    ]),
}


def print_error(error_type: str, context: Optional[dict] = None):
    """Print a framed error message with guidance."""
    if error_type in ERROR_PROMPTS:
        print(ERROR_PROMPTS[error_type])
    else:
        print(f"Error: {error_type}")

    if context:
        print("\nContext:")
        for k, v in context.items():
            print(f"  {k}: {v}")


def print_command_help(command: str):
    """Print detailed help for a specific command."""
    if command in COMMAND_HELP:
        print(COMMAND_HELP[command])
    else:
        print(f"No detailed help for '{command}'. Run 'folio help' for the full guide.")
