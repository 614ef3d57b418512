"""
Pytest configuration and shared fixtures.
"""

import pytest
from fastapi.testclient import TestClient

from api.config import APIConfig
from api.database import BookstoreService
from api.main import create_app
from api.storage import InMemoryStorage

VALID_TOKEN = "test-token"


@pytest.fixture
def sample_books():
    """Small catalogue whose aggregates match sample_reviews."""
    return [
        {
            "id": "1",
            "title": "The Cartographer of Lost Rivers",
            "author": "Layla Haddad",
            "price": 24.99,
            "rating": 0,
            "reviewCount": 0,
            "datePublished": "2022-03-15",
            "inStock": True,
            "featured": True,
            "genre": "Literary Fiction"
        },
        {
            "id": "2",
            "title": "Principles of Desert Ecology",
            "author": "Omar Farouk",
            "price": 59.5,
            "rating": 4.5,
            "reviewCount": 2,
            "datePublished": "2019-09-01",
            "inStock": True,
            "featured": False
        },
        {
            "id": "3",
            "title": "Salt and Saffron",
            "author": "Nadia Karim",
            "price": 18.0,
            "rating": 3.0,
            "reviewCount": 1,
            "datePublished": "2023-06-20",
            "inStock": False,
            "featured": True
        },
        {
            "id": "7",
            "title": "The Lantern Keeper",
            "author": "Hana Suleiman",
            "price": 15.99,
            "rating": 4.7,
            "reviewCount": 3,
            "datePublished": "2020-07-14",
            "inStock": True,
            "featured": False
        },
        {
            "id": "legacy-x",
            "title": "Ledger and Ink",
            "author": "Amira Fathi",
            "price": 29.0,
            "rating": 0,
            "reviewCount": 0,
            "datePublished": "2023-12-31",
            "inStock": True,
            "featured": "true"
        }
    ]


@pytest.fixture
def sample_reviews():
    """Reviews for sample_books, including one orphan."""
    return [
        {"id": "review-1", "bookId": "2", "author": "Leila B.", "rating": 4,
         "comment": "Excellent reference.", "timestamp": "2024-01-02T10:00:00.000Z", "verified": True},
        {"id": "review-2", "bookId": "2", "author": "Samir H.", "rating": 5,
         "comment": "Thorough and well illustrated.", "timestamp": "2024-01-03T10:00:00.000Z", "verified": False},
        {"id": "review-3", "bookId": "3", "author": "Noor K.", "rating": 3,
         "comment": "Some recipes did not work.", "timestamp": "2024-02-01T10:00:00.000Z", "verified": True},
        {"id": "review-4", "bookId": "7", "author": "Yasmin A.", "rating": 5,
         "comment": "A bedtime favourite.", "timestamp": "2024-03-01T10:00:00.000Z", "verified": True},
        {"id": "review-5", "bookId": "7", "author": "Peter L.", "rating": 5,
         "comment": "Lovely illustrations.", "timestamp": "2024-03-02T10:00:00.000Z", "verified": False},
        {"id": "review-10", "bookId": "7", "author": "Huda S.", "rating": 4,
         "comment": "Charming, if short.", "timestamp": "2024-03-05T10:00:00.000Z", "verified": True},
        {"id": "review-6", "bookId": "99", "author": "Ghost", "rating": 2,
         "comment": "Book no longer listed.", "timestamp": "2023-01-01T00:00:00.000Z", "verified": False}
    ]


@pytest.fixture
def book_storage(sample_books):
    return InMemoryStorage("books", sample_books)


@pytest.fixture
def review_storage(sample_reviews):
    return InMemoryStorage("reviews", sample_reviews)


@pytest.fixture
def bookstore(book_storage, review_storage):
    """Loaded bookstore service backed by in-memory storage."""
    service = BookstoreService(book_storage, review_storage)
    service.load()
    return service


@pytest.fixture
def api_settings():
    """API settings with a known token allow-list."""
    return APIConfig(api_tokens=f"{VALID_TOKEN},second-token", debug=False)


@pytest.fixture
def app(api_settings, book_storage, review_storage):
    return create_app(api_settings, book_storage, review_storage)


@pytest.fixture
def client(app):
    """Create test client with the lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {VALID_TOKEN}"}
