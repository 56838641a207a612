"""folio.config - Defaults and environment overrides"""

import os

# Store location (a directory holding data.lmdb); FOLIO_DB overrides
DEFAULT_DB_PATH = ".folio"

# LMDB environment - 1GB max size, adjust as needed
MAP_SIZE = 1024 * 1024 * 1024

# Versions kept per node; oldest are pruned first
MAX_VERSIONS = 10

# Preview lengths (characters)
TREE_PREVIEW_LENGTH = 10
VERSION_PREVIEW_LENGTH = 100

DEFAULT_TOKENIZER_MODEL = "gpt-4"


def default_db_path() -> str:
    return os.getenv("FOLIO_DB", DEFAULT_DB_PATH)


def tokenizer_model() -> str:
    return os.getenv("FOLIO_TOKENIZER_MODEL", DEFAULT_TOKENIZER_MODEL)


def log_level() -> str:
    return os.getenv("FOLIO_LOG_LEVEL", "WARNING").upper()
