"""Tests for context assembly, token budgets and generation."""

import pytest

from folio import ContextBuilder, FolioError, GenerationError, ValidationError, compose_prompt
from folio.context import REFERENCE_HEADER, append_generated
from folio.tokens import ApproximateEstimator


@pytest.fixture
def builder(store):
    return ContextBuilder(store, estimator=ApproximateEstimator())


@pytest.fixture
def nodes(store, work, titled):
    """World/Character/Advice nodes with content A, (blank) and C."""
    world = titled(work.id, "World Settings")
    character = titled(work.id, "Character Settings")
    advice = titled(work.id, "Writing Advice")
    store.save_content(world.id, "Frozen north")
    store.save_content(character.id, "   ")
    store.save_content(advice.id, "Show, don't tell")
    return world, character, advice


class FakeService:
    def __init__(self, reply="More words."):
        self.reply = reply
        self.calls = []

    def generate(self, prompt, context):
        self.calls.append((prompt, context))
        return self.reply


class TestAssemble:
    def test_blank_nodes_skipped(self, store, work, builder, nodes):
        world, character, advice = nodes
        tree = store.get_tree(work.id)
        out = builder.assemble([world.id, character.id, advice.id], tree)
        assert out == (
            "---\nSection: World Settings\nContent: |-\nFrozen north\n"
            "\n"
            "---\nSection: Writing Advice\nContent: |-\nShow, don't tell\n"
        )

    def test_selection_order_kept(self, store, work, builder, nodes):
        world, _, advice = nodes
        sections = builder.collect([advice.id, world.id], store.get_tree(work.id))
        assert [s.title for s in sections] == ["Writing Advice", "World Settings"]

    def test_missing_ids_and_duplicates(self, store, work, builder, nodes):
        world, _, _ = nodes
        sections = builder.collect([999, world.id, world.id], store.get_tree(work.id))
        assert [s.node_id for s in sections] == [world.id]

    def test_nothing_selected(self, store, work, builder):
        assert builder.assemble([], store.get_tree(work.id)) == ""

    def test_failed_fetch_is_skipped(self, store, work, builder, nodes, monkeypatch):
        world, _, advice = nodes
        real_get = store.get_content

        def flaky(node_id):
            if node_id == world.id:
                raise FolioError("read failed")
            return real_get(node_id)

        monkeypatch.setattr(store, "get_content", flaky)
        sections = builder.collect([world.id, advice.id], store.get_tree(work.id))
        assert [s.node_id for s in sections] == [advice.id]

    def test_full_context_with_reference(self, store, work, builder, nodes):
        world, _, _ = nodes
        out = builder.full_context("Chapter so far", [world.id], store.get_tree(work.id))
        assert out.startswith("Chapter so far" + REFERENCE_HEADER)
        assert out.endswith("Frozen north\n")

    def test_full_context_without_reference(self, store, work, builder):
        assert builder.full_context("Only this", [], store.get_tree(work.id)) == "Only this"
        assert builder.full_context(None, [], store.get_tree(work.id)) == ""


class TestEstimate:
    def test_zero_without_prompt_or_selection(self, store, work, builder):
        budget = builder.estimate("", "lots of base text", [], store.get_tree(work.id))
        assert budget.total == 0

    def test_prompt_and_context(self, store, work, builder, nodes):
        world, _, _ = nodes
        tree = store.get_tree(work.id)
        budget = builder.estimate("a" * 40, "", [world.id], tree)
        context = builder.full_context("", [world.id], tree)
        assert budget.prompt_tokens == 10
        assert budget.context_tokens == -(-len(context) // 4)
        assert budget.total == budget.prompt_tokens + budget.context_tokens

    def test_prompt_only(self, store, work, builder):
        budget = builder.estimate("a" * 8, "", [], store.get_tree(work.id))
        assert (budget.prompt_tokens, budget.context_tokens) == (2, 0)


class TestExport:
    def test_entries_include_blank(self, store, work, builder, nodes):
        world, character, _ = nodes
        entries = builder.export_entries([world.id, character.id, 999], store.get_tree(work.id))
        assert entries == [("World Settings", "Frozen north"), ("Character Settings", "   ")]


class TestGenerate:
    def test_reply_appended_and_versioned(self, store, work, titled, builder, nodes):
        world, _, _ = nodes
        text = titled(work.id, "Chapter Text")
        store.save_content(text.id, "Opening line.")
        service = FakeService("Second line.")

        result = builder.generate(service, text.id, "Continue", [world.id], store.get_tree(work.id))

        assert result.versioned()
        assert store.get_content(text.id) == "Opening line.\n\nSecond line."
        assert store.versions.get(text.id, result.snapshot) == "Opening line."
        prompt, context = service.calls[0]
        assert prompt == "Continue"
        assert context.startswith("Opening line." + REFERENCE_HEADER)

    def test_reply_into_empty_node(self, store, work, titled, builder):
        text = titled(work.id, "Chapter Text")
        result = builder.generate(FakeService("Fresh."), text.id, "Begin", [], store.get_tree(work.id))
        assert result.success
        assert not result.versioned()
        assert store.get_content(text.id) == "Fresh."

    def test_empty_prompt(self, store, work, titled, builder):
        text = titled(work.id, "Chapter Text")
        service = FakeService()
        with pytest.raises(ValidationError):
            builder.generate(service, text.id, "  ", [], store.get_tree(work.id))
        assert service.calls == []

    def test_empty_reply(self, store, work, titled, builder):
        text = titled(work.id, "Chapter Text")
        store.save_content(text.id, "keep me")
        with pytest.raises(GenerationError):
            builder.generate(FakeService(""), text.id, "Go", [], store.get_tree(work.id))
        assert store.get_content(text.id) == "keep me"
        assert store.versions.list(text.id) == []

    def test_service_error_propagates(self, store, work, titled, builder):
        class Failing:
            def generate(self, prompt, context):
                raise GenerationError("upstream 500")

        text = titled(work.id, "Chapter Text")
        with pytest.raises(GenerationError):
            builder.generate(Failing(), text.id, "Go", [], store.get_tree(work.id))


def test_compose_prompt():
    assert compose_prompt("Go on") == "Go on"
    assert compose_prompt("Go on", "  ") == "Go on"
    assert compose_prompt("Go on", "Story") == "Current content:\nStory\n\nRequest:\nGo on"


def test_append_generated():
    assert append_generated("", "new") == "new"
    assert append_generated("  ", "new") == "new"
    assert append_generated("old", "new") == "old\n\nnew"
