"""
End-to-end CLI tests using subprocess.

Each test runs `python -m folio` in a temporary directory, the way a
writer (or a script) would drive the store from a shell.

Run with: pytest tests/test_cli_e2e.py -v
"""

import os
import re
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent

# Node ids of the default structure in a fresh store
CHAPTER_ONE = "13"
VOLUME_CONTENT = "12"
CHAPTER_TEXT = "15"
WORLD_SETTINGS = "2"
WRITING_ADVICE = "4"


def folio(*args, cwd, stdin=None):
    """Run the folio CLI and return (returncode, stdout, stderr)."""
    env = dict(os.environ)
    env.pop("FOLIO_DB", None)
    env["PYTHONPATH"] = str(REPO_ROOT) + os.pathsep + env.get("PYTHONPATH", "")
    # Keep tokenizer lookups offline; the estimator falls back to ceil(len/4)
    env["FOLIO_TOKENIZER_MODEL"] = "no-such-model"
    result = subprocess.run(
        [sys.executable, "-m", "folio", *args],
        cwd=cwd,
        input=stdin,
        capture_output=True,
        text=True,
        env=env,
    )
    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def db(tmp_path):
    """Initialize a store and one default work in a temp directory."""
    rc, out, err = folio("init", cwd=tmp_path)
    assert rc == 0, f"init failed: {err}"
    rc, out, err = folio("new", "The Long Winter", cwd=tmp_path)
    assert rc == 0, f"new failed: {err}"
    assert "WORK_ID: 1" in out
    return tmp_path


# ── Init ────────────────────────────────────────────────────────────────────


class TestInit:
    def test_init_creates_store(self, tmp_path):
        rc, out, err = folio("init", cwd=tmp_path)
        assert rc == 0
        assert (tmp_path / ".folio" / "data.lmdb").exists()
        assert "INITIALIZED" in out

    def test_init_twice_is_safe(self, db):
        rc, out, err = folio("init", cwd=db)
        assert rc == 0
        assert "ALREADY EXISTS" in out

    def test_commands_need_init(self, tmp_path):
        rc, out, err = folio("works", cwd=tmp_path)
        assert rc == 1
        assert "NOT INITIALIZED" in out
        assert not (tmp_path / ".folio").exists()

    def test_custom_db_path(self, tmp_path):
        rc, out, err = folio("init", "--db", "elsewhere", cwd=tmp_path)
        assert rc == 0
        assert (tmp_path / "elsewhere" / "data.lmdb").exists()
        rc, out, err = folio("works", "--db", "elsewhere", cwd=tmp_path)
        assert rc == 0
        assert "NO WORKS YET" in out


# ── Works & structure ───────────────────────────────────────────────────────


class TestWorks:
    def test_new_prints_tree(self, tmp_path):
        folio("init", cwd=tmp_path)
        rc, out, err = folio("new", "Saga", "--description", "Epic", cwd=tmp_path)
        assert rc == 0
        assert "# Saga" in out
        assert f"[{CHAPTER_TEXT}] Chapter Text (chapter_content)" in out

    def test_new_empty(self, tmp_path):
        folio("init", cwd=tmp_path)
        rc, out, err = folio("new", "Bare", "--empty", cwd=tmp_path)
        assert rc == 0
        rc, out, err = folio("tree", "1", cwd=tmp_path)
        assert "WORK IS EMPTY" in out

    def test_works_lists(self, db):
        rc, out, err = folio("works", cwd=db)
        assert rc == 0
        assert "[1] The Long Winter" in out

    def test_drop_work(self, db):
        rc, out, err = folio("drop-work", "1", cwd=db)
        assert rc == 0
        rc, out, err = folio("tree", "1", cwd=db)
        assert rc == 1
        assert "Work not found" in out

    def test_tree_bad_id(self, db):
        rc, out, err = folio("tree", "abc", cwd=db)
        assert rc == 1
        assert "whole numbers" in out


class TestNodes:
    def test_add_chapter(self, db):
        rc, out, err = folio("add", "1", "Chapter 2", "--parent", VOLUME_CONTENT, cwd=db)
        assert rc == 0
        assert "NODE_ID: 17" in out
        rc, out, err = folio("tree", "1", cwd=db)
        assert "[17] Chapter 2 (chapter)" in out

    def test_add_bad_kind(self, db):
        rc, out, err = folio("add", "1", "Notes", "--kind", "appendix", cwd=db)
        assert rc == 1
        assert "Invalid input" in out

    def test_add_missing_parent(self, db):
        rc, out, err = folio("add", "1", "Lost", "--parent", "999", cwd=db)
        assert rc == 1
        assert "Cannot add node" in out

    def test_rename(self, db):
        rc, out, err = folio("rename", CHAPTER_ONE, "The", "Thaw", cwd=db)
        assert rc == 0
        rc, out, err = folio("tree", "1", cwd=db)
        assert "[13] The Thaw (chapter)" in out

    def test_delete_subtree(self, db):
        rc, out, err = folio("delete", CHAPTER_ONE, cwd=db)
        assert rc == 0
        rc, out, err = folio("tree", "1", cwd=db)
        assert "Chapter Text" not in out
        rc, out, err = folio("show", CHAPTER_TEXT, cwd=db)
        assert rc == 1
        assert "Node not found" in out


# ── Content & versions ──────────────────────────────────────────────────────


class TestContent:
    def test_save_and_show(self, db):
        rc, out, err = folio("save", CHAPTER_TEXT, "It was cold.", cwd=db)
        assert rc == 0
        assert "SNAPSHOT" not in out
        rc, out, err = folio("show", CHAPTER_TEXT, cwd=db)
        assert "It was cold." in out

    def test_save_from_stdin(self, db):
        rc, out, err = folio("save", CHAPTER_TEXT, "--stdin", cwd=db, stdin="From a pipe\n")
        assert rc == 0
        rc, out, err = folio("show", CHAPTER_TEXT, cwd=db)
        assert "From a pipe" in out

    def test_save_from_file(self, db):
        (db / "draft.txt").write_text("Drafted offline", encoding="utf-8")
        rc, out, err = folio("save", CHAPTER_TEXT, "--file", "draft.txt", cwd=db)
        assert rc == 0
        rc, out, err = folio("show", CHAPTER_TEXT, cwd=db)
        assert "Drafted offline" in out

    def test_save_without_content(self, db):
        rc, out, err = folio("save", CHAPTER_TEXT, cwd=db)
        assert rc == 1
        assert "No content given" in out

    def test_save_missing_node(self, db):
        rc, out, err = folio("save", "999", "text", cwd=db)
        assert rc == 1
        assert "Node not found" in out

    def test_history_and_restore(self, db):
        folio("save", CHAPTER_TEXT, "v1", cwd=db)
        rc, out, err = folio("save", CHAPTER_TEXT, "v2", cwd=db)
        label = re.search(r"SNAPSHOT: (\S+)", out).group(1)

        rc, out, err = folio("history", CHAPTER_TEXT, cwd=db)
        assert rc == 0
        assert label in out
        assert "1 kept" in out

        rc, out, err = folio("version", CHAPTER_TEXT, label, cwd=db)
        assert out.strip() == "v1"

        rc, out, err = folio("restore", CHAPTER_TEXT, label, cwd=db)
        assert rc == 0
        assert "VERSION RESTORED" in out

        rc, out, err = folio("show", CHAPTER_TEXT, cwd=db)
        assert "v1" in out
        rc, out, err = folio("history", CHAPTER_TEXT, cwd=db)
        assert "2 kept" in out

    def test_history_empty(self, db):
        rc, out, err = folio("history", CHAPTER_TEXT, cwd=db)
        assert rc == 0
        assert "NO VERSIONS" in out

    def test_restore_unknown_label(self, db):
        folio("save", CHAPTER_TEXT, "v1", cwd=db)
        rc, out, err = folio("restore", CHAPTER_TEXT, "20000101T000000", cwd=db)
        assert rc == 1
        assert "Version not found" in out
        rc, out, err = folio("show", CHAPTER_TEXT, cwd=db)
        assert "v1" in out


# ── Selection, context & tokens ─────────────────────────────────────────────


class TestContext:
    def test_select_roundtrip(self, db):
        rc, out, err = folio("select", "1", WORLD_SETTINGS, WRITING_ADVICE, cwd=db)
        assert rc == 0
        assert f"SELECTED: {WORLD_SETTINGS} {WRITING_ADVICE}" in out
        rc, out, err = folio("select", "1", cwd=db)
        assert f"SELECTED: {WORLD_SETTINGS} {WRITING_ADVICE}" in out
        rc, out, err = folio("select", "1", "--clear", cwd=db)
        assert "SELECTED: (none)" in out

    def test_context_uses_selection(self, db):
        folio("save", WORLD_SETTINGS, "Frozen north", cwd=db)
        folio("save", CHAPTER_TEXT, "The sled stopped.", cwd=db)
        folio("select", "1", WORLD_SETTINGS, WRITING_ADVICE, cwd=db)

        rc, out, err = folio("context", "1", "--base", CHAPTER_TEXT, "--prompt", "Continue", cwd=db)
        assert rc == 0
        assert out.startswith("The sled stopped.")
        assert "===== Reference =====" in out
        assert "Section: World Settings" in out
        assert "Section: Writing Advice" not in out
        assert "TOKENS:" in err

    def test_context_nodes_flag(self, db):
        folio("save", WRITING_ADVICE, "Show, don't tell", cwd=db)
        rc, out, err = folio("context", "1", "--nodes", WRITING_ADVICE, cwd=db)
        assert rc == 0
        assert "Section: Writing Advice" in out

    def test_tokens_approximate(self, tmp_path):
        rc, out, err = folio("tokens", "a" * 400, cwd=tmp_path)
        assert rc == 0
        assert "TOKENS: 100" in out
        assert "METHOD: approximate" in out

    def test_tokens_without_text(self, tmp_path):
        rc, out, err = folio("tokens", cwd=tmp_path)
        assert rc == 1


# ── Help & errors ───────────────────────────────────────────────────────────


class TestHelp:
    def test_help(self, tmp_path):
        rc, out, err = folio("help", cwd=tmp_path)
        assert rc == 0
        assert "QUICK REFERENCE" in out

    def test_command_help(self, tmp_path):
        rc, out, err = folio("help", "restore", cwd=tmp_path)
        assert rc == 0
        assert "COMMAND: restore" in out

    def test_unknown_command(self, db):
        rc, out, err = folio("frobnicate", cwd=db)
        assert rc == 1
        assert "Unknown command" in out
