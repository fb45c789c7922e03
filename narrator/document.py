from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

UNKNOWN_TITLE = "Untitled book"
UNKNOWN_AUTHOR = "Unknown author"


@dataclass(frozen=True)
class Chapter:
    id: str
    label: str
    text: str


@dataclass
class Book:
    title: str
    author: str
    chapters: List[Chapter] = field(default_factory=list)

    def __post_init__(self):
        # Only chapters with something to read
        self.chapters = [chapter for chapter in self.chapters if chapter.text.strip()]


class ChapterCursor:
    """Tracks which chapter of a book is selected for reading."""

    def __init__(self, book: Book, index: int = 0):
        self.book = book
        self.index = 0
        self.go_to(index)

    @property
    def current(self) -> Optional[Chapter]:
        if 0 <= self.index < len(self.book.chapters):
            return self.book.chapters[self.index]
        return None

    @property
    def has_next(self) -> bool:
        return self.index < len(self.book.chapters) - 1

    @property
    def has_previous(self) -> bool:
        return self.index > 0

    def next(self) -> bool:
        if not self.has_next:
            return False
        self.index += 1
        return True

    def previous(self) -> bool:
        if not self.has_previous:
            return False
        self.index -= 1
        return True

    def go_to(self, index: int) -> bool:
        if not 0 <= index < len(self.book.chapters):
            return False
        self.index = index
        return True


def load_text_book(paths: Iterable[Union[str, Path]], title: Optional[str] = None,
                   author: Optional[str] = None) -> Book:
    """
    Build a book from UTF-8 text files, one chapter per file in the given order.

    Args:
        paths: Chapter files
        title: Book title (defaults to the first file's name)
        author: Book author
    """
    paths = [Path(p) for p in paths]
    chapters = [
        Chapter(id=f"chapter-{i}", label=path.stem or f"Chapter {i + 1}",
                text=path.read_text(encoding="utf-8"))
        for i, path in enumerate(paths)
    ]
    default_title = paths[0].stem if paths else UNKNOWN_TITLE
    return Book(title=title or default_title, author=author or UNKNOWN_AUTHOR, chapters=chapters)
