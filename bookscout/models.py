"""Data models for books and the read list."""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_YEAR = "Unknown"
NO_DESCRIPTION = "No description available."
NO_AUTHOR_BIO = "No author information available."


@dataclass
class Book:
    """Normalized book representation."""
    id: str
    title: str = UNKNOWN_TITLE
    author: str = UNKNOWN_AUTHOR
    year: str = UNKNOWN_YEAR
    cover_url: str = ""
    rating: float = 0.0
    review_count: int = 0
    subjects: List[str] = field(default_factory=list)

    @property
    def subjects_str(self) -> str:
        """Format subjects as comma-separated string."""
        return ", ".join(self.subjects) if self.subjects else "None"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookDetail(Book):
    """Book merged with the long-form fields of the work and its author."""
    description: str = NO_DESCRIPTION
    author_bio: str = NO_AUTHOR_BIO

    @classmethod
    def from_book(
        cls,
        book: Book,
        description: str = NO_DESCRIPTION,
        author_bio: str = NO_AUTHOR_BIO
    ) -> "BookDetail":
        return cls(
            id=book.id,
            title=book.title,
            author=book.author,
            year=book.year,
            cover_url=book.cover_url,
            rating=book.rating,
            review_count=book.review_count,
            subjects=list(book.subjects),
            description=description,
            author_bio=author_bio
        )


@dataclass
class ReadListEntry:
    """A book the user marked as read."""
    id: str
    title: str
    author: str
    cover_url: str
    read_at: str

    @classmethod
    def from_book(cls, book: Book, read_at: Optional[str] = None) -> "ReadListEntry":
        """
        Build an entry for a book, stamped with the current UTC time.

        Args:
            book: Book (or BookDetail) being marked as read
            read_at: Explicit ISO-8601 timestamp, mostly for tests

        Returns:
            New read-list entry
        """
        if read_at is None:
            read_at = datetime.now(timezone.utc).isoformat()
        return cls(
            id=book.id,
            title=book.title,
            author=book.author,
            cover_url=book.cover_url,
            read_at=read_at
        )

    @property
    def read_at_datetime(self) -> datetime:
        """Parsed timestamp; naive values are taken as UTC, garbage sorts last."""
        value = self.read_at or ""
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return datetime.min.replace(tzinfo=timezone.utc)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def to_dict(self) -> Dict[str, str]:
        # camelCase keys match blobs written by the mobile app
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "coverUrl": self.cover_url,
            "readAt": self.read_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadListEntry":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or UNKNOWN_TITLE),
            author=str(data.get("author") or UNKNOWN_AUTHOR),
            cover_url=str(data.get("coverUrl") or data.get("cover_url") or ""),
            read_at=str(data.get("readAt") or data.get("read_at") or "")
        )
