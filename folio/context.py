"""folio.context - Assemble selected nodes into a generation payload"""

import logging
from typing import Optional, List, Iterable, Protocol, Tuple, TYPE_CHECKING

from .errors import FolioError, GenerationError, ValidationError
from .models import ContextSection, SaveResult, TokenBudget, TreeNode
from .tokens import TokenEstimator, get_estimator
from .tree import walk

if TYPE_CHECKING:
    from .folio import Folio

logger = logging.getLogger(__name__)

REFERENCE_HEADER = "\n\n===== Reference =====\n"


class GenerationService(Protocol):
    """External text generator. Raises GenerationError on failure."""

    def generate(self, prompt: str, context: str) -> str:
        ...


def compose_prompt(prompt: str, context: str = "") -> str:
    """Request text a generation service sends for (prompt, context)."""
    if context and context.strip():
        return f"Current content:\n{context}\n\nRequest:\n{prompt}"
    return prompt


def append_generated(previous: str, generated: str) -> str:
    if previous and previous.strip():
        return previous + "\n\n" + generated
    return generated


class ContextBuilder:
    """
    Turns a selection of nodes into the reference context handed to a
    generation service, and keeps the running token estimate for it.
    """

    def __init__(self, store: "Folio", estimator: Optional[TokenEstimator] = None):
        self.store = store
        self.estimator = estimator or get_estimator()

    def collect(self, selected_ids: Iterable[int], tree: List[TreeNode]) -> List[ContextSection]:
        """
        Sections for the selected nodes, in selection order.

        Ids missing from the tree and nodes with blank content are
        skipped. A node whose content cannot be read is logged and
        skipped; the rest of the context is still built.
        """
        index = {node.id: node for node in walk(tree)}
        sections = []

        for node_id in dict.fromkeys(selected_ids):
            node = index.get(node_id)
            if node is None:
                logger.debug("Skipping node %s: not in tree", node_id)
                continue

            try:
                content = self.store.get_content(node_id)
            except FolioError as e:
                logger.error("Failed to load content for node %s: %s", node_id, e)
                continue

            if content and content.strip():
                sections.append(ContextSection(node_id=node_id, title=node.title, content=content))

        return sections

    def assemble(self, selected_ids: Iterable[int], tree: List[TreeNode]) -> str:
        """Render the selected nodes as sections; empty string if none qualify."""
        return "\n".join(section.render() for section in self.collect(selected_ids, tree))

    def full_context(self, base_content: str, selected_ids: Iterable[int], tree: List[TreeNode]) -> str:
        """Working content followed by the reference sections, if any."""
        reference = self.assemble(selected_ids, tree)
        base = base_content or ""
        if reference:
            return base + REFERENCE_HEADER + reference
        return base

    def estimate(
        self,
        prompt: str,
        base_content: str,
        selected_ids: Iterable[int],
        tree: List[TreeNode],
    ) -> TokenBudget:
        """Token budget for a request. Recompute whenever any input changes."""
        selected = list(selected_ids)
        if not prompt and not selected:
            return TokenBudget()

        context = self.full_context(base_content, selected, tree)
        return TokenBudget(
            prompt_tokens=self.estimator.estimate(prompt),
            context_tokens=self.estimator.estimate(context),
        )

    def export_entries(self, selected_ids: Iterable[int], tree: List[TreeNode]) -> List[Tuple[str, str]]:
        """(title, content) pairs for the export collaborator, blank content included."""
        index = {node.id: node for node in walk(tree)}
        entries = []
        for node_id in dict.fromkeys(selected_ids):
            node = index.get(node_id)
            if node is not None:
                entries.append((node.title, self.store.get_content(node_id)))
        return entries

    def generate(
        self,
        service: GenerationService,
        node_id: int,
        prompt: str,
        selected_ids: Iterable[int],
        tree: List[TreeNode],
    ) -> SaveResult:
        """
        Ask `service` for text using the node's content plus the selected
        references, then append the reply to the node through the normal
        save path (so the pre-generation text becomes a version).
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        base = self.store.get_content(node_id)
        selected = list(selected_ids)
        context = self.full_context(base, selected, tree)
        budget = self.estimate(prompt, base, selected, tree)
        logger.debug(
            "Generation request for node %s: %d context chars, %d selected, ~%d tokens",
            node_id, len(context), len(selected), budget.total,
        )

        reply = service.generate(prompt, context)
        if not reply or not reply.strip():
            raise GenerationError("Generation service returned an empty response")

        logger.debug("Generation reply: %d chars, ~%d tokens", len(reply), self.estimator.estimate(reply))
        return self.store.save_content(node_id, append_generated(base, reply))
