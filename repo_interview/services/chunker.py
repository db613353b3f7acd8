# repo_interview/services/chunker.py

"""
Line-window chunking of an extracted repository snapshot.

Files are split into fixed windows of `window` lines where consecutive
windows share `overlap` lines, so anything straddling a window edge is
wholly contained in at least one chunk. Boundaries depend only on file
content, which keeps re-indexing idempotent.
"""

import os
from dataclasses import dataclass, field, replace
from typing import List

from repo_interview.config import settings
from repo_interview.utils.logging import logger

CODE_EXTENSIONS = {
    ".js", ".jsx", ".ts", ".tsx", ".py", ".ipynb", ".java", ".cpp", ".c",
    ".go", ".rs", ".rb", ".php", ".swift", ".kt", ".scala", ".clj", ".sh",
    ".sql", ".html", ".css", ".scss", ".json", ".yaml", ".yml", ".xml", ".md",
}

LANGUAGES = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".ipynb": "jupyter",
    ".java": "java",
    ".cpp": "cpp",
    ".c": "c",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".scala": "scala",
    ".clj": "clojure",
    ".sh": "shell",
    ".sql": "sql",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".xml": "xml",
    ".md": "markdown",
}

IGNORE_DIRS = {
    "node_modules", ".git", "dist", "build", ".next", ".cache", "coverage",
    ".vscode", ".idea", "__pycache__", ".pytest_cache", "venv", "env", ".env",
}

# Generated manifests: large, noisy, never interesting to ask about
IGNORE_FILES = {"package.json", "package-lock.json"}

# Overlap used when a line window is re-split for exceeding max_chars
SPLIT_OVERLAP_LINES = 5


@dataclass(frozen=True)
class CodeChunk:
    path: str
    start_line: int  # 1-indexed, inclusive
    end_line: int  # 1-indexed, inclusive
    content: str
    language: str = "unknown"
    score: float = 0.0

    def __post_init__(self):
        if self.start_line < 1 or self.end_line < self.start_line:
            raise ValueError(
                f"Invalid line range {self.start_line}-{self.end_line} for {self.path}"
            )

    @property
    def key(self) -> tuple:
        return (self.path, self.start_line, self.end_line)

    def with_content(self, content: str) -> "CodeChunk":
        return replace(self, content=content)


@dataclass(frozen=True)
class SkippedFile:
    path: str
    reason: str


@dataclass
class ChunkingResult:
    chunks: List[CodeChunk] = field(default_factory=list)
    files_indexed: int = 0
    skipped: List[SkippedFile] = field(default_factory=list)

    @property
    def total_chars(self) -> int:
        return sum(len(c.content) for c in self.chunks)


def infer_language(path: str) -> str:
    return LANGUAGES.get(os.path.splitext(path)[1].lower(), "unknown")


def window_ranges(line_count: int, window: int, overlap: int) -> List[tuple]:
    """
    0-based half-open [start, end) ranges of a sliding window over
    `line_count` lines. The last window ends exactly at `line_count`.
    """
    if window <= 0 or overlap < 0 or overlap >= window:
        raise ValueError(f"Invalid window={window} overlap={overlap}")

    step = window - overlap
    ranges = []
    start = 0
    while start < line_count:
        end = min(start + window, line_count)
        ranges.append((start, end))
        if end == line_count:
            break
        start += step
    return ranges


def split_by_chars(lines: List[str], first_line: int, max_chars: int) -> List[tuple]:
    """
    Re-split an over-long window into (start_line, end_line, lines) pieces no
    longer than max_chars each (a single over-long line stays whole).
    Neighbouring pieces share up to SPLIT_OVERLAP_LINES lines.
    """
    pieces = []
    current: List[str] = []
    current_start = first_line
    size = 0

    for line in lines:
        line_size = len(line) + 1
        if current and size + line_size > max_chars:
            end_line = current_start + len(current) - 1
            pieces.append((current_start, end_line, current))

            keep = min(SPLIT_OVERLAP_LINES, len(current) - 1)
            current = current[len(current) - keep:] if keep else []
            current_start = end_line - len(current) + 1
            size = sum(len(x) + 1 for x in current)
            # Overlap alone plus the next line may still not fit
            while current and size + line_size > max_chars:
                size -= len(current[0]) + 1
                current = current[1:]
                current_start += 1
            if not current:
                current_start = end_line + 1

        current.append(line)
        size += line_size

    if current:
        pieces.append((current_start, current_start + len(current) - 1, current))
    return pieces


def chunk_text(
    path: str,
    text: str,
    window: int | None = None,
    overlap: int | None = None,
    max_chars: int | None = None,
) -> List[CodeChunk]:
    window = window or settings.chunk_lines
    overlap = settings.chunk_overlap if overlap is None else overlap
    max_chars = max_chars or settings.max_chunk_chars
    language = infer_language(path)

    lines = text.splitlines()
    chunks: List[CodeChunk] = []

    for start, end in window_ranges(len(lines), window, overlap):
        window_lines = lines[start:end]
        body = "\n".join(window_lines)
        if not body.strip():
            continue

        if len(body) <= max_chars:
            chunks.append(CodeChunk(path, start + 1, end, body, language))
            continue

        for piece_start, piece_end, piece_lines in split_by_chars(window_lines, start + 1, max_chars):
            piece = "\n".join(piece_lines)
            if piece.strip():
                chunks.append(CodeChunk(path, piece_start, piece_end, piece, language))

    return chunks


class Chunker:
    def __init__(
        self,
        window: int | None = None,
        overlap: int | None = None,
        max_file_bytes: int | None = None,
        max_chunk_chars: int | None = None,
    ):
        self.window = window or settings.chunk_lines
        self.overlap = settings.chunk_overlap if overlap is None else overlap
        self.max_file_bytes = max_file_bytes or settings.max_file_bytes
        self.max_chunk_chars = max_chunk_chars or settings.max_chunk_chars

    def iter_candidate_files(self, root: str):
        """Yield (absolute, repo-relative) paths in a stable order."""
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in IGNORE_DIRS)
            for name in sorted(filenames):
                if name in IGNORE_FILES:
                    continue
                if os.path.splitext(name)[1].lower() not in CODE_EXTENSIONS:
                    continue
                full = os.path.join(dirpath, name)
                rel = os.path.relpath(full, root).replace(os.sep, "/")
                yield full, rel

    def chunk(self, repo_root_path: str) -> ChunkingResult:
        logger.info(f"Chunking repository at {repo_root_path}")
        result = ChunkingResult()

        for full, rel in self.iter_candidate_files(repo_root_path):
            if os.path.islink(full):
                result.skipped.append(SkippedFile(rel, "Symbolic link"))
                continue

            try:
                size = os.path.getsize(full)
            except OSError as exc:
                result.skipped.append(SkippedFile(rel, f"Error accessing file: {exc}"))
                continue

            if size > self.max_file_bytes:
                result.skipped.append(
                    SkippedFile(
                        rel,
                        f"File too large ({size / 1024 / 1024:.2f}MB > "
                        f"{self.max_file_bytes / 1024 / 1024:.2f}MB)",
                    )
                )
                continue

            try:
                with open(full, "r", encoding="utf-8") as f:
                    text = f.read()
            except (UnicodeDecodeError, OSError) as exc:
                result.skipped.append(SkippedFile(rel, f"Failed to read: {exc}"))
                continue

            if "\x00" in text:
                result.skipped.append(SkippedFile(rel, "Binary content"))
                continue

            file_chunks = chunk_text(rel, text, self.window, self.overlap, self.max_chunk_chars)
            logger.debug(f"{rel}: {len(file_chunks)} chunks")
            result.chunks.extend(file_chunks)
            result.files_indexed += 1

        logger.info(
            f"Created {len(result.chunks)} chunks from {result.files_indexed} files "
            f"({len(result.skipped)} skipped)"
        )
        for skipped in result.skipped[:10]:
            logger.warning(f"Skipped {skipped.path}: {skipped.reason}")
        if len(result.skipped) > 10:
            logger.warning(f"... and {len(result.skipped) - 10} more skipped files")

        return result
