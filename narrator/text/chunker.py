"""
Sentence-bounded text chunking for speech synthesis.

Text is cut at sentence terminators first; sentences longer than the
configured maximum are wrapped at whitespace. Every segment keeps its
offsets into the source so the original text (and its whitespace) can be
recovered exactly.
"""

from dataclasses import dataclass
from typing import List, Tuple

from narrator.core.exceptions import EmptyInput

DEFAULT_MAX_LENGTH = 200

SENTENCE_TERMINATORS = frozenset(".!?")
# Characters that still belong to a sentence once it has been terminated
CLOSING_MARKS = frozenset("\"')]}»”’")

Span = Tuple[int, int]


@dataclass(frozen=True)
class Segment:
    """One piece of text submitted to a backend in a single synthesis call."""
    index: int
    text: str
    start: int
    end: int

    @property
    def length(self) -> int:
        return len(self.text)


class Chunker:
    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH):
        if max_length < 1:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self.max_length = max_length

    def split(self, text: str) -> List[Segment]:
        """
        Split text into ordered speech segments.

        Args:
            text: Source text, typically a whole chapter

        Returns:
            Non-empty segments in source order. A segment only exceeds
            max_length when it is a single word with no whitespace to break at.

        Raises:
            EmptyInput: if text is empty or whitespace only
        """
        if not text or text.isspace():
            raise EmptyInput("Cannot speak empty text")

        pieces: List[Span] = []
        for start, end in self._sentences(text):
            if end - start <= self.max_length:
                pieces.append((start, end))
            else:
                pieces.extend(self._wrap(text, start, end))

        segments = []
        for start, end in pieces:
            start, end = _trim(text, start, end)
            if start < end:
                segments.append(Segment(len(segments), text[start:end], start, end))
        return segments

    def _sentences(self, text: str) -> List[Span]:
        spans = []
        start = 0
        i = 0
        n = len(text)
        while i < n:
            if text[i] in SENTENCE_TERMINATORS:
                # "?!", "..." and trailing quotes stay with their sentence
                while i + 1 < n and text[i + 1] in SENTENCE_TERMINATORS:
                    i += 1
                while i + 1 < n and text[i + 1] in CLOSING_MARKS:
                    i += 1
                spans.append((start, i + 1))
                start = i + 1
            i += 1
        if start < n:
            spans.append((start, n))
        return spans

    def _wrap(self, text: str, start: int, end: int) -> List[Span]:
        spans = []
        pos = _skip_space(text, start, end)
        while pos < end:
            if end - pos <= self.max_length:
                spans.append((pos, end))
                break

            limit = pos + self.max_length
            cut = -1
            # a space right after the window still gives a full-length piece
            for i in range(limit, pos, -1):
                if text[i].isspace():
                    cut = i
                    break

            if cut == -1:
                # No break point inside the window: keep the word whole
                cut = limit
                while cut < end and not text[cut].isspace():
                    cut += 1

            spans.append((pos, cut))
            pos = _skip_space(text, cut, end)
        return spans


def _skip_space(text: str, pos: int, end: int) -> int:
    while pos < end and text[pos].isspace():
        pos += 1
    return pos


def _trim(text: str, start: int, end: int) -> Span:
    start = _skip_space(text, start, end)
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end
