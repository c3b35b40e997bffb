#!/usr/bin/env python3
"""Book Explorer CLI - Open Library search and read list."""
import argparse
import asyncio
import sys
import json
from contextlib import contextmanager
from tabulate import tabulate
from bookscout.async_client import AsyncOpenLibraryClient, FetchFailure
from bookscout.config import Config
from bookscout.models import ReadListEntry
from bookscout.readlist import AddResult, ReadListError, ReadListStore
from bookscout.storage import JsonFileStorage, MemoryStorage, StorageError
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def make_client(config: Config) -> AsyncOpenLibraryClient:
    return AsyncOpenLibraryClient(
        base_url=config.OPENLIBRARY_BASE_URL,
        covers_base_url=config.OPENLIBRARY_COVERS_URL,
        timeout=config.DEFAULT_TIMEOUT
    )


@contextmanager
def open_storage(config: Config):
    """Pick the read-list persistence surface from configuration."""
    if config.STORAGE_BACKEND == "postgres":
        from bookscout.database import Database
        with Database(config.DATABASE_URL) as db:
            db.init_schema()
            yield db
    elif config.STORAGE_BACKEND == "memory":
        yield MemoryStorage()
    else:
        yield JsonFileStorage(config.READLIST_PATH)


def _clip(text: str, width: int) -> str:
    return text[:width] + "..." if len(text) > width else text


def display_books(books, format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ID", "Title", "Author", "Year", "Rating", "Reviews"]
        rows = [
            [
                book.id,
                _clip(book.title, 50),
                _clip(book.author, 30),
                book.year,
                book.rating if book.rating > 0 else "N/A",
                book.review_count
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([book.to_dict() for book in books], indent=2))

    elif format_type == "compact":
        for i, book in enumerate(books, 1):
            print(f"{i}. {book.title} - {book.author}")


def display_detail(book, format_type: str):
    """Display a single book with its description and author bio."""
    if format_type == "json":
        print(json.dumps(book.to_dict(), indent=2))
        return

    rows = [
        ["Title", book.title],
        ["Author", book.author],
        ["Year", book.year],
        ["Rating", f"{book.rating} ({book.review_count} reviews)" if book.rating > 0 else "N/A"],
        ["Subjects", book.subjects_str],
        ["Cover", book.cover_url],
    ]
    print("\n" + tabulate(rows, tablefmt="plain"))
    print(f"\nAbout this book\n{book.description}")
    print(f"\nAbout the author\n{book.author_bio}\n")


async def search_books(args, config: Config):
    """Search Open Library."""
    async with make_client(config) as client:
        books = await client.search(args.query)
    logger.info(f"Found {len(books)} books")
    display_books(books, args.format)


async def featured_books(args, config: Config):
    """List the featured books shown on the dashboard."""
    async with make_client(config) as client:
        books = await client.fetch_featured()
    display_books(books, args.format)


async def show_book(args, config: Config):
    """Show one work's merged detail record."""
    async with make_client(config) as client:
        book = await client.fetch_detail(args.book_id)
    display_detail(book, args.format)


async def mark_read(args, config: Config, store: ReadListStore):
    """Fetch a work and add it to the read list."""
    async with make_client(config) as client:
        book = await client.fetch_detail(args.book_id)

    if store.add(ReadListEntry.from_book(book)) is AddResult.ALREADY_PRESENT:
        print(f'"{book.title}" is already in your read list!')
    else:
        print(f'"{book.title}" added to your read list.')


def confirm(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    answer = input(f"{prompt} [y/N] ").strip().lower()
    return answer in ("y", "yes")


def read_list_command(args, config: Config):
    """Manage the local read list."""
    with open_storage(config) as storage:
        store = ReadListStore(storage, key=config.READLIST_KEY)
        _run_read_command(args, config, store)


def _run_read_command(args, config: Config, store: ReadListStore):
    if args.read_command == "list":
        entries = store.list()
        if not entries:
            print("No books read yet")
            return
        headers = ["ID", "Title", "Author", "Read at"]
        rows = [[e.id, _clip(e.title, 50), _clip(e.author, 30), e.read_at] for e in entries]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif args.read_command == "add":
        asyncio.run(mark_read(args, config, store))

    elif args.read_command == "remove":
        if confirm(f"Remove {args.book_id} from your read list?", args.yes):
            store.remove(args.book_id)
            print(f"Removed {args.book_id}")

    elif args.read_command == "clear":
        if confirm("Remove every book from your read list?", args.yes):
            store.clear()
            print("Read list cleared")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Explorer - Open Library search and read list",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search
  %(prog)s search "the hobbit"

  # Featured books as JSON
  %(prog)s featured --format json

  # Details, then mark as read
  %(prog)s show OL27482W
  %(prog)s read add OL27482W
  %(prog)s read list
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Search command
    search_parser = subparsers.add_parser("search", help="Search for books")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    # Featured command
    featured_parser = subparsers.add_parser("featured", help="Show featured books")
    featured_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    # Show command
    show_parser = subparsers.add_parser("show", help="Show details for a work")
    show_parser.add_argument("book_id", help="Open Library work id, e.g. OL27482W")
    show_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    # Read list commands
    read_parser = subparsers.add_parser("read", help="Manage your read list")
    read_sub = read_parser.add_subparsers(dest="read_command", required=True)
    read_sub.add_parser("list", help="List books you have read")
    add_parser = read_sub.add_parser("add", help="Mark a work as read")
    add_parser.add_argument("book_id", help="Open Library work id")
    remove_parser = read_sub.add_parser("remove", help="Remove a work from the list")
    remove_parser.add_argument("book_id", help="Open Library work id")
    remove_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    clear_parser = read_sub.add_parser("clear", help="Empty the read list")
    clear_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()

    try:
        if args.command == "search":
            asyncio.run(search_books(args, config))

        elif args.command == "featured":
            asyncio.run(featured_books(args, config))

        elif args.command == "show":
            asyncio.run(show_book(args, config))

        elif args.command == "read":
            read_list_command(args, config)

    except (FetchFailure, ReadListError, StorageError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
