"""folio.models - Record types for works, nodes, contents and versions"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any, Tuple
from enum import Enum


class NodeKind(Enum):
    # Work settings
    WORK_SETTINGS = "work_settings"
    WORLD_SETTINGS = "world_settings"
    CHARACTER_SETTINGS = "character_settings"
    WRITING_ADVICE = "writing_advice"
    OVERALL_OUTLINE = "overall_outline"

    WORK_INTRO = "work_intro"
    CHAT = "chat"

    # Manuscript structure
    WORK_CONTENT = "work_content"
    VOLUME = "volume"
    VOLUME_OUTLINE = "volume_outline"
    VOLUME_SUMMARY = "volume_summary"
    VOLUME_CONTENT = "volume_content"
    CHAPTER = "chapter"
    CHAPTER_OUTLINE = "chapter_outline"
    CHAPTER_CONTENT = "chapter_content"
    CHAPTER_CONTEXT = "chapter_context"


# (kind, title, sort_order, children) - seeded by Folio.initialize_work()
DEFAULT_SKELETON: List[Tuple[NodeKind, str, int, list]] = [
    (NodeKind.WORK_SETTINGS, "Work Settings", 1, [
        (NodeKind.WORLD_SETTINGS, "World Settings", 1, []),
        (NodeKind.CHARACTER_SETTINGS, "Character Settings", 2, []),
        (NodeKind.WRITING_ADVICE, "Writing Advice", 3, []),
        (NodeKind.OVERALL_OUTLINE, "Overall Outline", 4, []),
    ]),
    (NodeKind.WORK_INTRO, "Introduction", 2, []),
    (NodeKind.CHAT, "Free Chat", 3, []),
    (NodeKind.WORK_CONTENT, "Manuscript", 4, [
        (NodeKind.VOLUME, "Volume 1", 1, [
            (NodeKind.VOLUME_OUTLINE, "Volume Outline", 1, []),
            (NodeKind.VOLUME_SUMMARY, "Volume Summary", 2, []),
            (NodeKind.VOLUME_CONTENT, "Volume Content", 3, [
                (NodeKind.CHAPTER, "Chapter 1", 1, [
                    (NodeKind.CHAPTER_OUTLINE, "Chapter Outline", 1, []),
                    (NodeKind.CHAPTER_CONTENT, "Chapter Text", 2, []),
                    (NodeKind.CHAPTER_CONTEXT, "Chapter Context", 3, []),
                ]),
            ]),
        ]),
    ]),
]


@dataclass
class Work:
    """A top-level authored project."""
    id: int
    name: str
    description: str
    created_at: float
    updated_at: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Work":
        return cls(
            id=data['id'],
            name=data['name'],
            description=data.get('description') or "",
            created_at=data['created_at'],
            updated_at=data['updated_at'],
        )


@dataclass
class Node:
    """A titled element of a work's structure tree (what is stored)."""
    id: int
    work_id: int
    parent_id: Optional[int]
    kind: NodeKind
    title: str
    sort_order: int
    created_at: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        return cls(
            id=data['id'],
            work_id=data['work_id'],
            parent_id=data.get('parent_id'),
            kind=NodeKind(data['kind']),
            title=data['title'],
            sort_order=data.get('sort_order', 0),
            created_at=data['created_at'],
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['kind'] = self.kind.value
        return data


@dataclass
class Content:
    """Current text body of a node. At most one per node."""
    id: int
    node_id: int
    content: str
    updated_at: float


@dataclass
class Version:
    """Immutable snapshot of a node's content."""
    id: int
    node_id: int
    label: str
    content: str
    created_at: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Version":
        return cls(
            id=data['id'],
            node_id=data['node_id'],
            label=data['label'],
            content=data.get('content') or "",
            created_at=data['created_at'],
        )


@dataclass
class VersionInfo:
    """A version list entry; the preview is computed at read time."""
    label: str
    created_at: float
    preview: str


@dataclass
class TreeNode:
    """Display projection of a node (what is shown). Never persisted."""
    id: int
    title: str
    kind: NodeKind
    has_content: bool
    preview: str
    children: List["TreeNode"] = field(default_factory=list)


@dataclass
class ContextSection:
    """One selected node as it appears in an assembled context."""
    node_id: int
    title: str
    content: str

    def render(self) -> str:
        return f"---\nSection: {self.title}\nContent: |-\n{self.content}\n"


@dataclass
class TokenBudget:
    """Running token estimate for a generation request."""
    prompt_tokens: int = 0
    context_tokens: int = 0

    @property
    def total(self) -> int:
        return self.prompt_tokens + self.context_tokens


@dataclass
class SaveResult:
    """Result of a content save."""
    success: bool
    node_id: int
    snapshot: Optional[str] = None  # Label of the version written, if any
    message: str = ""

    def versioned(self) -> bool:
        return self.success and self.snapshot is not None


@dataclass
class PromptTemplate:
    """A reusable generation prompt."""
    id: int
    name: str
    content: str
    created_at: float
    updated_at: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptTemplate":
        return cls(
            id=data['id'],
            name=data['name'],
            content=data['content'],
            created_at=data['created_at'],
            updated_at=data['updated_at'],
        )
