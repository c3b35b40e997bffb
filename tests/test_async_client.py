"""Tests for the Open Library aggregation client."""
import asyncio

import httpx
import pytest

from bookscout.async_client import (
    DETAIL_FAILED,
    FEATURED_FAILED,
    SEARCH_FAILED,
    AsyncOpenLibraryClient,
    FetchFailure,
)
from bookscout.parse import PLACEHOLDER_COVER_URL

HOBBIT_DOC = {
    "key": "/works/OL27482W",
    "title": "The Hobbit",
    "author_name": ["J.R.R. Tolkien"],
    "first_publish_year": 1937,
    "cover_i": 14627060,
    "ratings_average": 4.26,
    "ratings_count": 1200,
    "subject": ["Fantasy", "Dragons", "Wizards"]
}

HOBBIT_WORK = {
    "key": "/works/OL27482W",
    "title": "The Hobbit",
    "description": {
        "type": "/type/text",
        "value": "**Bilbo** goes THERE and back again [1].\n\n[1]: https://example.org"
    },
    "authors": [{"author": {"key": "/authors/OL26320A"}, "type": {"key": "/type/author_role"}}]
}

TOLKIEN = {"name": "J.R.R. Tolkien", "bio": "An English writer (Source: Wikipedia)."}


def run_with_client(handler, action):
    """Run ``action(client)`` against a client backed by ``handler``."""
    async def main():
        async with AsyncOpenLibraryClient(transport=httpx.MockTransport(handler)) as client:
            return await action(client)

    return asyncio.run(main())


def make_handler(routes, seen=None):
    """Build a handler answering ``routes[path]`` (a Response or callable)."""
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "notfound"})
        if callable(route):
            return route(request)
        return route

    return handler


def test_search_normalizes_docs():
    """Test a plain search."""
    seen = []
    handler = make_handler({"/search.json": httpx.Response(200, json={"numFound": 1, "docs": [HOBBIT_DOC]})}, seen)

    books = run_with_client(handler, lambda c: c.search("the  hobbit "))

    assert len(books) == 1
    assert books[0].id == "OL27482W"
    assert books[0].rating == 4.3
    assert seen[0].url.params["q"] == "the  hobbit "
    assert seen[0].url.params["limit"] == "20"


def test_search_caps_results():
    """Test that results never exceed the page size."""
    docs = [{"key": f"/works/OL{i}W", "title": f"Book {i}"} for i in range(25)]
    handler = make_handler({"/search.json": httpx.Response(200, json={"numFound": 25, "docs": docs})})

    books = run_with_client(handler, lambda c: c.search("book"))

    assert len(books) == 20


@pytest.mark.parametrize("response", [
    httpx.Response(500, json={}),
    httpx.Response(200, json={"unexpected": True}),
    httpx.Response(200, text="<html>maintenance</html>"),
])
def test_search_failures_raise_fetch_failure(response):
    """Test status, payload and decoding errors."""
    handler = make_handler({"/search.json": response})

    with pytest.raises(FetchFailure) as excinfo:
        run_with_client(handler, lambda c: c.search("hobbit"))

    assert str(excinfo.value) == SEARCH_FAILED


def test_search_network_error():
    """Test that transport errors become a FetchFailure."""
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchFailure) as excinfo:
        run_with_client(handler, lambda c: c.search("hobbit"))

    assert str(excinfo.value) == SEARCH_FAILED
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_search_tolerates_non_finite_numbers():
    """Test Infinity and NaN literals in the body fall back to defaults."""
    body = (
        b'{"docs": [{"key": "/works/OL1W", "title": "Odd", "first_publish_year": Infinity,'
        b' "cover_i": NaN, "ratings_average": NaN, "ratings_count": -Infinity}]}'
    )
    handler = make_handler({
        "/search.json": httpx.Response(200, content=body, headers={"Content-Type": "application/json"})
    })

    books = run_with_client(handler, lambda c: c.search("odd"))

    assert [b.id for b in books] == ["OL1W"]
    assert books[0].year == "Unknown"
    assert books[0].cover_url == PLACEHOLDER_COVER_URL
    assert books[0].rating == 0
    assert books[0].review_count == 0


def test_fetch_featured_drops_coverless_books():
    """Test the featured query and the cover filter."""
    seen = []
    docs = [
        HOBBIT_DOC,
        {"key": "/works/OL2W", "title": "No Cover"},
        {"key": "/works/OL3W", "title": "Zero Cover", "cover_i": 0},
        {"key": "/works/OL5W", "title": "Text Cover", "cover_i": "abc"},
        {"key": "/works/OL6W", "title": "Negative Cover", "cover_i": -5},
        {"key": "/works/OL4W", "title": "Dune", "cover_i": 11481354},
    ]
    handler = make_handler({"/search.json": httpx.Response(200, json={"docs": docs})}, seen)

    books = run_with_client(handler, lambda c: c.fetch_featured())

    assert [b.id for b in books] == ["OL27482W", "OL4W"]
    assert all(b.cover_url != PLACEHOLDER_COVER_URL for b in books)
    assert seen[0].url.params["q"] == "popular fiction classics"
    assert seen[0].url.params["sort"] == "rating"


def test_fetch_featured_failure():
    """Test featured failures carry their own message."""
    handler = make_handler({"/search.json": httpx.Response(503)})

    with pytest.raises(FetchFailure) as excinfo:
        run_with_client(handler, lambda c: c.fetch_featured())

    assert str(excinfo.value) == FEATURED_FAILED


def test_fetch_detail_merges_all_sources():
    """Test the work, search and author calls merged together."""
    handler = make_handler({
        "/works/OL27482W.json": httpx.Response(200, json=HOBBIT_WORK),
        "/search.json": httpx.Response(200, json={"docs": [HOBBIT_DOC]}),
        "/authors/OL26320A.json": httpx.Response(200, json=TOLKIEN),
    })

    detail = run_with_client(handler, lambda c: c.fetch_detail("OL27482W"))

    assert detail.id == "OL27482W"
    assert detail.title == "The Hobbit"
    assert detail.rating == 4.3
    assert detail.review_count == 1200
    assert detail.subjects == ["Fantasy", "Dragons", "Wizards"]
    assert detail.description == "Bilbo goes There and back again."
    assert detail.author_bio == "An English writer."


def test_fetch_detail_issues_required_calls_concurrently():
    """Test both required calls are in flight before either answers."""
    async def main():
        started = set()
        both_started = asyncio.Event()

        async def handler(request):
            started.add(request.url.path)
            if {"/works/OL27482W.json", "/search.json"} <= started:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=1)
            if request.url.path == "/search.json":
                return httpx.Response(200, json={"docs": [HOBBIT_DOC]})
            return httpx.Response(200, json={"description": "Plain text."})

        async with AsyncOpenLibraryClient(transport=httpx.MockTransport(handler)) as client:
            return await client.fetch_detail("OL27482W")

    detail = asyncio.run(main())

    assert detail.description == "Plain text."


def test_fetch_detail_survives_author_failure():
    """Test that a failing bio call keeps the placeholder bio."""
    handler = make_handler({
        "/works/OL27482W.json": httpx.Response(200, json=HOBBIT_WORK),
        "/search.json": httpx.Response(200, json={"docs": [HOBBIT_DOC]}),
        "/authors/OL26320A.json": httpx.Response(500),
    })

    detail = run_with_client(handler, lambda c: c.fetch_detail("OL27482W"))

    assert detail.author_bio == "No author information available."
    assert detail.title == "The Hobbit"
    assert detail.description == "Bilbo goes There and back again."


def test_fetch_detail_survives_author_network_error():
    """Test that a transport error on the bio call is absorbed."""
    def author_down(request):
        raise httpx.ReadTimeout("timed out", request=request)

    handler = make_handler({
        "/works/OL27482W.json": httpx.Response(200, json=HOBBIT_WORK),
        "/search.json": httpx.Response(200, json={"docs": [HOBBIT_DOC]}),
        "/authors/OL26320A.json": author_down,
    })

    detail = run_with_client(handler, lambda c: c.fetch_detail("OL27482W"))

    assert detail.author_bio == "No author information available."
    assert detail.rating == 4.3


def test_fetch_detail_without_author_skips_bio_call():
    """Test that no author reference means no third request."""
    seen = []
    handler = make_handler({
        "/works/OL27482W.json": httpx.Response(200, json={"title": "The Hobbit"}),
        "/search.json": httpx.Response(200, json={"docs": [HOBBIT_DOC]}),
    }, seen)

    detail = run_with_client(handler, lambda c: c.fetch_detail("OL27482W"))

    assert len(seen) == 2
    assert detail.description == "No description available."
    assert detail.author_bio == "No author information available."


def test_fetch_detail_uses_stub_without_matching_doc():
    """Test the stub base when search has nothing for the work."""
    handler = make_handler({
        "/works/OL27482W.json": httpx.Response(200, json={"description": "A story."}),
        "/search.json": httpx.Response(200, json={"docs": [{"key": "/works/OL1W", "title": "Other"}]}),
    })

    detail = run_with_client(handler, lambda c: c.fetch_detail("OL27482W"))

    assert detail.id == "OL27482W"
    assert detail.title == "Unknown Title"
    assert detail.cover_url == PLACEHOLDER_COVER_URL
    assert detail.rating == 0
    assert detail.description == "A story."


@pytest.mark.parametrize("broken_path", ["/works/OL27482W.json", "/search.json"])
def test_fetch_detail_required_call_failure(broken_path):
    """Test that either required call failing fails the whole fetch."""
    routes = {
        "/works/OL27482W.json": httpx.Response(200, json=HOBBIT_WORK),
        "/search.json": httpx.Response(200, json={"docs": [HOBBIT_DOC]}),
        "/authors/OL26320A.json": httpx.Response(200, json=TOLKIEN),
    }
    routes[broken_path] = httpx.Response(500)

    with pytest.raises(FetchFailure) as excinfo:
        run_with_client(make_handler(routes), lambda c: c.fetch_detail("OL27482W"))

    assert str(excinfo.value) == DETAIL_FAILED


def test_fetch_detail_failure_leaves_no_request_running():
    """Test that a fast failure waits for the other required call to settle."""
    async def main():
        finished = []

        async def handler(request):
            if request.url.path == "/search.json":
                await asyncio.sleep(0.1)
                finished.append(request.url.path)
                return httpx.Response(200, json={"docs": [HOBBIT_DOC]})
            return httpx.Response(500)

        async with AsyncOpenLibraryClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(FetchFailure):
                await client.fetch_detail("OL27482W")
            pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]

        return finished, pending

    finished, pending = asyncio.run(main())

    assert finished == ["/search.json"]
    assert pending == []
