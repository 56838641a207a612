"""folio - Versioned document tree for long-form writing"""

__version__ = "0.1.0"

from .folio import Folio
from .ledger import VersionLedger
from .context import ContextBuilder, GenerationService, compose_prompt
from .tokens import ApproximateEstimator, TiktokenEstimator, TokenEstimator, estimate_tokens, get_estimator
from .tree import build_tree, find_node, render_tree, walk
from .models import (
    ContextSection, Node, NodeKind, PromptTemplate, SaveResult, TokenBudget, TreeNode, Version,
    VersionInfo, Work,
)
from .errors import FolioError, GenerationError, NotFoundError, StorageError, ValidationError
from .cli import main

__all__ = [
    'Folio', 'VersionLedger', 'ContextBuilder', 'GenerationService', 'compose_prompt',
    'ApproximateEstimator', 'TiktokenEstimator', 'TokenEstimator', 'estimate_tokens', 'get_estimator',
    'build_tree', 'find_node', 'render_tree', 'walk',
    'ContextSection', 'Node', 'NodeKind', 'PromptTemplate', 'SaveResult', 'TokenBudget', 'TreeNode',
    'Version', 'VersionInfo', 'Work',
    'FolioError', 'GenerationError', 'NotFoundError', 'StorageError', 'ValidationError',
    'main', '__version__',
]
