"""Async Open Library client that aggregates search, work and author data."""
import asyncio
import httpx
from typing import List, Optional, Dict, Any
import logging

from bookscout.models import Book, BookDetail, NO_DESCRIPTION, NO_AUTHOR_BIO
from bookscout.parse import (
    COVERS_BASE_URL,
    author_key,
    extract_docs,
    has_cover,
    normalize_doc,
    parse_search_response,
    stub_book,
    unwrap_text,
)
from bookscout.sanitize import sanitize

logger = logging.getLogger(__name__)

SEARCH_FIELDS = "key,title,author_name,first_publish_year,cover_i,ratings_average,ratings_count,subject,edition_count"
FEATURED_FIELDS = "key,title,author_name,first_publish_year,cover_i,ratings_average,ratings_count"
DETAIL_FIELDS = "key,title,author_name,first_publish_year,cover_i,ratings_average,ratings_count,subject"
FEATURED_QUERY = "popular fiction classics"
PAGE_SIZE = 20

SEARCH_FAILED = "Failed to search books. Please check your connection"
FEATURED_FAILED = "Failed to fetch featured books. Please check your connection"
DETAIL_FAILED = "Failed to fetch book details."


class FetchFailure(RuntimeError):
    """A required Open Library call failed; the message is safe to show users."""


class AsyncOpenLibraryClient:
    """Async client for searching Open Library and assembling book details."""

    BASE_URL = "https://openlibrary.org"

    def __init__(
        self,
        base_url: Optional[str] = None,
        covers_base_url: str = COVERS_BASE_URL,
        timeout: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize async client.

        Args:
            base_url: Open Library host (defaults to BASE_URL)
            covers_base_url: Covers host used to build cover URLs
            timeout: Request timeout in seconds
            transport: Optional httpx transport, e.g. a MockTransport in tests
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.covers_base_url = covers_base_url
        self.timeout = timeout

        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "User-Agent": "bookscout/1.0"}
        )

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a path and decode its JSON body.

        Raises:
            httpx.HTTPError: Network failure or non-2xx status
            ValueError: Body is not JSON
        """
        url = f"{self.base_url}{path}"
        logger.info(f"Async request: {url} {params or ''}")
        response = await self.client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    async def _search_raw(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return extract_docs(await self._get_json("/search.json", params))

    async def search(self, query: str) -> List[Book]:
        """
        Search for books.

        Args:
            query: Search text, sent to Open Library as-is

        Returns:
            Up to PAGE_SIZE normalized books

        Raises:
            FetchFailure: On any network, status or payload error
        """
        params = {"q": query, "limit": PAGE_SIZE, "fields": SEARCH_FIELDS}
        try:
            payload = await self._get_json("/search.json", params)
            books = parse_search_response(payload, PAGE_SIZE, self.covers_base_url)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Search failed for {query!r}: {e}")
            raise FetchFailure(SEARCH_FAILED) from e

        logger.info(f"Search {query!r} returned {len(books)} books")
        return books

    async def fetch_featured(self) -> List[Book]:
        """
        Fetch the dashboard's featured books.

        Docs without a cover are dropped before normalizing so the
        dashboard only shows real cover art.

        Raises:
            FetchFailure: On any network, status or payload error
        """
        params = {
            "q": FEATURED_QUERY,
            "limit": PAGE_SIZE,
            "sort": "rating",
            "fields": FEATURED_FIELDS
        }
        try:
            docs = await self._search_raw(params)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Featured fetch failed: {e}")
            raise FetchFailure(FEATURED_FAILED) from e

        books = [
            normalize_doc(doc, self.covers_base_url)
            for doc in docs[:PAGE_SIZE]
            if has_cover(doc)
        ]
        return [book for book in books if book.id]

    async def fetch_detail(self, book_id: str) -> BookDetail:
        """
        Assemble the detail record for one work.

        The work endpoint has the description but no ratings, the search
        endpoint has ratings and subjects but no description, so both are
        requested in parallel and merged. The author bio is fetched
        afterwards and is optional.

        Args:
            book_id: Work id such as ``OL45804W``

        Returns:
            BookDetail with every field populated

        Raises:
            FetchFailure: When the work or search call fails
        """
        # both calls settle before any error is raised
        work, docs = await asyncio.gather(
            self._get_json(f"/works/{book_id}.json"),
            self._search_raw({"q": book_id, "fields": DETAIL_FIELDS}),
            return_exceptions=True
        )
        for result in (work, docs):
            if isinstance(result, (httpx.HTTPError, ValueError)):
                logger.error(f"Detail fetch failed for {book_id}: {result}")
                raise FetchFailure(DETAIL_FAILED) from result
            if isinstance(result, BaseException):
                raise result

        if not isinstance(work, dict):
            logger.error(f"Work payload for {book_id} is not an object")
            raise FetchFailure(DETAIL_FAILED)

        base = self._base_book(book_id, docs)
        description = sanitize(unwrap_text(work.get("description")) or "") or NO_DESCRIPTION

        author_bio = NO_AUTHOR_BIO
        key = author_key(work)
        if key:
            author_bio = await self._fetch_author_bio(key)

        return BookDetail.from_book(base, description=description, author_bio=author_bio)

    def _base_book(self, book_id: str, docs: List[Dict[str, Any]]) -> Book:
        # Only a doc for the same work may supply base fields; the id never changes
        for doc in docs:
            book = normalize_doc(doc, self.covers_base_url)
            if book.id == book_id:
                return book
        logger.info(f"No search doc matched {book_id}, using stub")
        return stub_book(book_id, self.covers_base_url)

    async def _fetch_author_bio(self, key: str) -> str:
        """Fetch and clean an author bio; any failure keeps the placeholder."""
        path = key if key.startswith("/") else f"/authors/{key}"
        try:
            author = await self._get_json(f"{path}.json")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Author bio unavailable for {key}: {e}")
            return NO_AUTHOR_BIO

        bio = unwrap_text(author.get("bio")) if isinstance(author, dict) else None
        return sanitize(bio or "") or NO_AUTHOR_BIO

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
