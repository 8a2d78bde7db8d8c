"""Background code indexing, snippet extraction and fingerprint maintenance."""

from memoria.indexer.code_indexer import CodeIndexer
from memoria.indexer.detect import extract_code_blocks, is_code_related
from memoria.indexer.maintenance import Maintenance, MaintenanceReport
from memoria.indexer.snippets import SnippetScanner, detect_language, extract_snippets
from memoria.indexer.tasks import TaskQueue

__all__ = [
    "CodeIndexer",
    "Maintenance",
    "MaintenanceReport",
    "SnippetScanner",
    "TaskQueue",
    "detect_language",
    "extract_code_blocks",
    "extract_snippets",
    "is_code_related",
]
