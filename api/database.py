"""
Bookstore service layer for the FastAPI application.

Holds the book and review collections in memory and flushes them to their
storage backends after each successful write.
"""

import asyncio
import copy
import re
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

import structlog

from api.models import BookCreate, ReviewCreate
from api.storage import CollectionStorage, Record

logger = structlog.get_logger(__name__)

TOP_RATED_LIMIT = 10
REVIEW_ID_PATTERN = re.compile(r"^review-(\d+)$")


class BookNotFoundError(LookupError):
    """Raised when a referenced book does not exist."""

    def __init__(self, book_id: str):
        super().__init__(f"Book with ID '{book_id}' not found")
        self.book_id = book_id


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse an ISO 8601 date or datetime into an aware UTC datetime.

    Date-only values are midnight UTC and naive datetimes are taken as UTC.

    Returns:
        The parsed datetime, or None if the value cannot be parsed
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def round_rating(value: float) -> float:
    """Round half-up to one decimal."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def next_book_id(books: List[Record]) -> str:
    numeric_ids = [int(book["id"]) for book in books if str(book.get("id", "")).isdigit()]
    return str(max(numeric_ids, default=0) + 1)


def next_review_id(reviews: List[Record]) -> str:
    suffixes = []
    for review in reviews:
        match = REVIEW_ID_PATTERN.match(str(review.get("id", "")))
        if match:
            suffixes.append(int(match.group(1)))
    return f"review-{max(suffixes, default=0) + 1}"


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


class BookstoreService:
    """In-memory catalogue and reviews backed by swappable storage."""

    def __init__(self, book_storage: CollectionStorage, review_storage: CollectionStorage):
        self.book_storage = book_storage
        self.review_storage = review_storage
        self.books: List[Record] = []
        self.reviews: List[Record] = []
        self._write_lock = asyncio.Lock()

    def load(self) -> None:
        """Load both collections from storage. Called once at startup."""
        self.books = self.book_storage.load()
        self.reviews = self.review_storage.load()
        logger.info("Bookstore data loaded", books=len(self.books), reviews=len(self.reviews))

    # Catalogue queries

    async def get_books(self) -> List[Record]:
        """Return the full catalogue in storage order."""
        return list(self.books)

    async def get_book_by_id(self, book_id: str) -> Optional[Record]:
        """
        Get a single book by ID.

        Args:
            book_id: Book identifier, matched exactly

        Returns:
            The book if found, None otherwise
        """
        return self._find_book(book_id)

    async def search_by_date_range(self, start: str, end: str) -> List[Record]:
        """
        Get books published between two dates, both inclusive.

        Args:
            start: Lower bound (ISO date or datetime)
            end: Upper bound (ISO date or datetime)

        Returns:
            Matching books in storage order

        Raises:
            ValueError: If either bound is missing
        """
        if not start or not end:
            raise ValueError("Please provide both start and end dates")

        start_date = parse_date(start)
        end_date = parse_date(end)
        if start_date is None or end_date is None:
            logger.info("Unparseable date range, no books match", start=start, end=end)
            return []

        matches = []
        for book in self.books:
            published = parse_date(book.get("datePublished"))
            if published is not None and start_date <= published <= end_date:
                matches.append(book)
        return matches

    async def get_top_rated(self, limit: int = TOP_RATED_LIMIT) -> List[Record]:
        """
        Get the best books by score (rating * reviewCount).

        Returns:
            At most ``limit`` books with a ``score`` field, highest first
        """
        scored = [
            {**book, "score": _number(book.get("rating")) * _number(book.get("reviewCount"))}
            for book in self.books
        ]
        # sorted() is stable, so ties keep storage order
        scored = sorted(scored, key=lambda book: book["score"], reverse=True)
        return scored[:limit]

    async def get_featured(self) -> List[Record]:
        """Return books flagged as featured, in storage order."""
        return [book for book in self.books if book.get("featured") is True]

    # Review queries

    async def get_reviews_for_book(self, book_id: str) -> Dict[str, Any]:
        """
        Get every review for a book.

        Raises:
            BookNotFoundError: If the book does not exist
        """
        book = self._find_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)

        book_reviews = self._reviews_for(book_id)
        return {
            "bookId": book_id,
            "bookTitle": book.get("title"),
            "totalReviews": len(book_reviews),
            "reviews": book_reviews,
        }

    # Mutations

    async def create_book(self, book_in: BookCreate) -> Record:
        """
        Add a book to the catalogue and persist it.

        The id is assigned here; rating and reviewCount are derived from
        any reviews already pointing at that id.

        Raises:
            StorageError: If the catalogue cannot be written
        """
        async with self._write_lock:
            payload = book_in.model_dump()
            payload.pop("id", None)
            if payload.get("datePublished") is None:
                payload["datePublished"] = date.today().isoformat()

            book: Record = {"id": next_book_id(self.books)}
            book.update(payload)
            self._apply_aggregates(book)

            previous_books = self.books
            self.books = previous_books + [book]
            try:
                await asyncio.to_thread(self.book_storage.save, self.books)
            except Exception:
                self.books = previous_books
                raise

        logger.info("Book created", book_id=book["id"], title=book.get("title"))
        return book

    async def create_review(self, review_in: ReviewCreate) -> Tuple[Record, Record]:
        """
        Add a review, refresh the reviewed book's aggregates and persist both
        collections.

        Returns:
            Tuple of (stored review, updated book)

        Raises:
            BookNotFoundError: If the reviewed book does not exist
            ValueError: If the rating is outside 1-5
            StorageError: If either collection cannot be written
        """
        async with self._write_lock:
            book_index = self._find_book_index(review_in.bookId)
            if book_index is None:
                raise BookNotFoundError(review_in.bookId)
            if not 1 <= review_in.rating <= 5:
                raise ValueError("Rating must be between 1 and 5")

            review: Record = {
                "id": next_review_id(self.reviews),
                "bookId": review_in.bookId,
                "author": review_in.author,
                "rating": review_in.rating,
                "comment": review_in.comment,
                "timestamp": review_in.timestamp or _utc_now_iso(),
                "verified": review_in.verified,
            }

            previous_books, previous_reviews = self.books, self.reviews
            self.reviews = previous_reviews + [review]
            updated_book = copy.deepcopy(previous_books[book_index])
            self._apply_aggregates(updated_book)
            self.books = list(previous_books)
            self.books[book_index] = updated_book

            try:
                await asyncio.to_thread(self.review_storage.save, self.reviews)
            except Exception:
                self.books, self.reviews = previous_books, previous_reviews
                raise

            try:
                await asyncio.to_thread(self.book_storage.save, self.books)
            except Exception:
                self.books, self.reviews = previous_books, previous_reviews
                await self._restore_reviews(previous_reviews)
                raise

        logger.info(
            "Review created",
            review_id=review["id"],
            book_id=updated_book["id"],
            rating=updated_book["rating"],
            review_count=updated_book["reviewCount"],
        )
        return review, updated_book

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "books_count": len(self.books),
            "reviews_count": len(self.reviews),
        }

    async def _restore_reviews(self, reviews: List[Record]) -> None:
        """Write back the previous reviews after the catalogue save failed."""
        try:
            await asyncio.to_thread(self.review_storage.save, reviews)
        except Exception as e:
            logger.error("Failed to restore reviews after catalogue write error", error=str(e))

    def _find_book(self, book_id: str) -> Optional[Record]:
        index = self._find_book_index(book_id)
        return None if index is None else self.books[index]

    def _find_book_index(self, book_id: str) -> Optional[int]:
        for index, book in enumerate(self.books):
            if book.get("id") == book_id:
                return index
        return None

    def _reviews_for(self, book_id: str) -> List[Record]:
        return [review for review in self.reviews if review.get("bookId") == book_id]

    def _apply_aggregates(self, book: Record) -> None:
        ratings = [_number(review.get("rating")) for review in self._reviews_for(book["id"])]
        book["reviewCount"] = len(ratings)
        book["rating"] = round_rating(sum(ratings) / len(ratings)) if ratings else 0


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
