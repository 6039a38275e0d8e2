"""Split documents into overlapping fragments."""

from __future__ import annotations

# Preferred break points, strongest first.
_BREAKS = ("\n\n", ". ", ".\n", "! ", "? ", "\n", " ")


def split_chunks(text: str, chunk_size: int = 512, chunk_overlap: int = 20) -> list[str]:
    """Split *text* into chunks of at most *chunk_size* characters.

    Consecutive chunks share up to *chunk_overlap* characters.  Breaks
    prefer paragraph, then sentence, then word boundaries found in the
    back half of the window.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be in [0, chunk_size)")

    text = (text or "").strip()
    if not text:
        return []
    if len(text) <= chunk_size:
        return [text]

    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            window_start = start + chunk_size // 2
            window = text[window_start:end]
            for marker in _BREAKS:
                cut = window.rfind(marker)
                if cut != -1:
                    end = window_start + cut + len(marker)
                    break
        piece = text[start:end].strip()
        if piece:
            chunks.append(piece)
        if end >= len(text):
            break
        start = max(end - chunk_overlap, start + 1)
    return chunks
