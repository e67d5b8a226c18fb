"""
Plain-text documents as retrieved context.

Documents are split into paragraph-bounded chunks at word boundaries, with
an extra bridging chunk between neighbours, and the chunks sharing the most
words with a query are handed to the chat session.
"""
import re
from pathlib import Path
from typing import Iterable, List, Sequence

from core.contracts.models import RetrievedContext
from utils.errors import DocumentError
from utils.logger import logger

TOKEN_PATTERN = re.compile(r"\w+")


def create_chunks(
    text: str,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
    paragraph_separator: str = "\n\n",
    separator: str = " ",
) -> List[str]:
    """
    Splits ``text`` into chunks of at most ``chunk_size`` characters.

    Each paragraph is packed word by word. A single word longer than
    ``chunk_size`` becomes its own chunk. When ``chunk_overlap`` is above 1,
    each pair of adjacent chunks in a paragraph also yields a bridging chunk
    made of the tail of the first and the head of the second.
    """
    chunks: List[str] = []
    for paragraph in text.split(paragraph_separator):
        current = ""
        paragraph_chunks: List[str] = []
        for word in paragraph.split(separator):
            candidate = current + (separator if current else "") + word
            if len(candidate) <= chunk_size:
                current = candidate
            else:
                if current:
                    paragraph_chunks.append(current)
                current = word
        if current:
            paragraph_chunks.append(current)

        chunks.extend(paragraph_chunks)
        if chunk_overlap > 1:
            for first, second in zip(paragraph_chunks, paragraph_chunks[1:]):
                chunks.append(first[max(0, len(first) - chunk_overlap):] + " " + second[:chunk_overlap])
    return chunks


def load_context_files(
    paths: Iterable[str], chunk_size: int = 500, chunk_overlap: int = 50
) -> List[RetrievedContext]:
    """
    Reads UTF-8 text files and returns their chunks.

    Raises:
        DocumentError: If a file cannot be read.
    """
    contexts: List[RetrievedContext] = []
    for path in paths:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentError(f"Could not read context file {path}: {e}") from e
        file_chunks = create_chunks(text, chunk_size, chunk_overlap)
        logger.debug(f"Split {path} into {len(file_chunks)} chunks")
        contexts.extend(RetrievedContext(file_name=Path(path).name, context=c) for c in file_chunks if c.strip())
    return contexts


def _tokens(text: str) -> set:
    return {t for t in TOKEN_PATTERN.findall(text.lower()) if len(t) >= 2}


def select_contexts(query: str, contexts: Sequence[RetrievedContext], limit: int) -> List[RetrievedContext]:
    """
    Returns up to ``limit`` chunks sharing the most words with ``query``.

    Chunks with no shared word are dropped; ties keep document order.
    """
    if limit <= 0 or not contexts:
        return []
    query_tokens = _tokens(query)
    scored = []
    for index, context in enumerate(contexts):
        score = len(query_tokens & _tokens(context.context))
        if score:
            scored.append((-score, index, context))
    scored.sort(key=lambda item: (item[0], item[1]))
    return [context for _, _, context in scored[:limit]]
