"""Parse and normalize Open Library API responses."""
import math
from typing import Dict, Any, List, Optional
from bookscout.models import Book, UNKNOWN_TITLE, UNKNOWN_AUTHOR, UNKNOWN_YEAR

COVERS_BASE_URL = "https://covers.openlibrary.org/b"
PLACEHOLDER_COVER_URL = "https://via.placeholder.com/150x200?text=No+Cover"
MAX_SUBJECTS = 5
HEURISTIC_RATING = 3.5
HEURISTIC_MIN_COUNT = 100


def _is_number(value: Any) -> bool:
    # JSON may carry Infinity/NaN, which int() cannot take
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    return math.isfinite(value)


def has_cover(doc: Any) -> bool:
    """True when a search doc carries a usable numeric ``cover_i``."""
    if not isinstance(doc, dict):
        return False
    cover_id = doc.get("cover_i")
    return _is_number(cover_id) and cover_id > 0


def work_id_from_key(key: Any) -> str:
    """Turn ``/works/OL45804W`` into ``OL45804W``."""
    if not isinstance(key, str):
        return ""
    return key.strip().rstrip("/").split("/")[-1]


def build_cover_url(cover_id: Any, covers_base_url: str = COVERS_BASE_URL) -> str:
    """
    Build a medium cover URL from a numeric cover id.

    Args:
        cover_id: ``cover_i`` value from a search doc
        covers_base_url: Covers host, e.g. ``https://covers.openlibrary.org/b``

    Returns:
        Cover URL, or the placeholder when there is no usable id
    """
    if not has_cover({"cover_i": cover_id}):
        return PLACEHOLDER_COVER_URL
    return f"{covers_base_url.rstrip('/')}/id/{int(cover_id)}-M.jpg"


def _resolve_author(value: Any) -> str:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return UNKNOWN_AUTHOR
    names = [name.strip() for name in value if isinstance(name, str) and name.strip()]
    return ", ".join(names) if names else UNKNOWN_AUTHOR


def _resolve_year(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else None
    if _is_number(value):
        return str(int(value))
    if isinstance(value, str) and value.strip():
        return value.strip()
    return UNKNOWN_YEAR


def _resolve_rating(average: Any, count: int) -> float:
    # An explicit average wins, even 0; 3.5 is a popularity guess, not data
    if _is_number(average):
        return min(5.0, max(0.0, round(float(average), 1)))
    if count > HEURISTIC_MIN_COUNT:
        return HEURISTIC_RATING
    return 0.0


def _resolve_count(value: Any) -> int:
    if _is_number(value) and value > 0:
        return int(value)
    return 0


def _resolve_subjects(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [s for s in value if isinstance(s, str)][:MAX_SUBJECTS]


def normalize_doc(doc: Any, covers_base_url: str = COVERS_BASE_URL) -> Book:
    """
    Map one search doc into a Book.

    Never raises: anything missing or of the wrong type falls back to the
    documented default. A doc without a ``key`` gets an empty id.

    Args:
        doc: Single entry of the ``docs`` array of ``/search.json``
        covers_base_url: Covers host used for ``cover_url``

    Returns:
        Book with every field populated
    """
    if not isinstance(doc, dict):
        doc = {}

    title = doc.get("title")
    review_count = _resolve_count(doc.get("ratings_count"))

    return Book(
        id=work_id_from_key(doc.get("key")),
        title=title.strip() if isinstance(title, str) and title.strip() else UNKNOWN_TITLE,
        author=_resolve_author(doc.get("author_name")),
        year=_resolve_year(doc.get("first_publish_year")),
        cover_url=build_cover_url(doc.get("cover_i"), covers_base_url),
        rating=_resolve_rating(doc.get("ratings_average"), review_count),
        review_count=review_count,
        subjects=_resolve_subjects(doc.get("subject"))
    )


def stub_book(book_id: str, covers_base_url: str = COVERS_BASE_URL) -> Book:
    """Normalize a Book from nothing but its work id, kept exactly as given."""
    book = normalize_doc({}, covers_base_url)
    book.id = book_id
    return book


def extract_docs(response_json: Any) -> List[Dict[str, Any]]:
    """
    Pull the ``docs`` array out of a ``/search.json`` response.

    Raises:
        ValueError: When the payload is not a search envelope
    """
    if not isinstance(response_json, dict):
        raise ValueError("Search response is not a JSON object")
    docs = response_json.get("docs")
    if not isinstance(docs, list):
        raise ValueError("Search response has no docs array")
    return [doc for doc in docs if isinstance(doc, dict)]


def parse_search_response(
    response_json: Any,
    limit: Optional[int] = None,
    covers_base_url: str = COVERS_BASE_URL
) -> List[Book]:
    """
    Parse a full ``/search.json`` response.

    Args:
        response_json: Complete API response JSON
        limit: Maximum number of books to keep
        covers_base_url: Covers host used for ``cover_url``

    Returns:
        List of Book objects, docs without a key dropped

    Raises:
        ValueError: When the payload is malformed
    """
    books = []

    for doc in extract_docs(response_json):
        book = normalize_doc(doc, covers_base_url)
        if book.id:
            books.append(book)

    return books[:limit] if limit is not None else books


def unwrap_text(value: Any) -> Optional[str]:
    """
    Resolve a text field that is either a plain string or ``{"value": str}``.

    Returns:
        The string, or None when neither shape is present
    """
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, str) and value.strip():
        return value
    return None


def author_key(work_json: Any) -> Optional[str]:
    """Return the primary author reference of a work, e.g. ``/authors/OL23919A``."""
    if not isinstance(work_json, dict):
        return None
    authors = work_json.get("authors")
    if not isinstance(authors, list) or not authors:
        return None
    first = authors[0]
    if not isinstance(first, dict):
        return None
    author = first.get("author")
    key = author.get("key") if isinstance(author, dict) else first.get("key")
    if isinstance(key, str) and key.strip():
        return key.strip()
    return None
