"""
FastAPI main application for the Amana Bookstore API.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import verify_api_token
from api.config import APIConfig, config
from api.database import BookNotFoundError, BookstoreService
from api.models import (
    Book, BookCreate, BookCreatedResponse, BookReviewsResponse,
    ErrorResponse, HealthResponse, ReviewCreate, ReviewCreatedResponse,
    ScoredBook
)
from api.storage import CollectionStorage, JsonFileStorage, StorageError

# Setup logging
logger = structlog.get_logger(__name__)

PRESENCE_ERRORS = {"missing", "string_too_short"}

router = APIRouter()


def get_bookstore(request: Request) -> BookstoreService:
    """Bookstore service owned by the running application."""
    return request.app.state.bookstore


def error_content(message: str, detail: Optional[str] = None) -> dict:
    return ErrorResponse(error=message, detail=detail).model_dump(exclude_none=True)


# Health check endpoint
@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request, bookstore: BookstoreService = Depends(get_bookstore)):
    """Health check endpoint."""
    health_info = await bookstore.health_check()
    return HealthResponse(
        status=health_info["status"],
        timestamp=datetime.now(timezone.utc),
        version=request.app.version,
        books_count=health_info["books_count"],
        reviews_count=health_info["reviews_count"]
    )


# Books endpoints. Literal sub-paths come before /books/{book_id}.
@router.get("/books", response_model=List[Book], tags=["Books"])
async def get_books(bookstore: BookstoreService = Depends(get_bookstore)):
    """Get every book in the catalogue."""
    books = await bookstore.get_books()
    return JSONResponse(content=books)


@router.get("/books/date-range/search", response_model=List[Book], tags=["Books"])
async def search_books_by_date_range(
    start: Optional[str] = None,
    end: Optional[str] = None,
    bookstore: BookstoreService = Depends(get_bookstore)
):
    """
    Get books published between two dates, both inclusive.

    - **start**: Lower bound, e.g. 2022-01-01
    - **end**: Upper bound, e.g. 2023-12-31
    """
    try:
        books = await bookstore.search_by_date_range(start, end)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return JSONResponse(content=books)


@router.get("/books/top-rated", response_model=List[ScoredBook], tags=["Books"])
@router.get("/books/top/rated", response_model=List[ScoredBook], include_in_schema=False)
async def get_top_rated_books(bookstore: BookstoreService = Depends(get_bookstore)):
    """Get the top 10 books by rating multiplied by review count."""
    books = await bookstore.get_top_rated()
    return JSONResponse(content=books)


@router.get("/books/featured-list", response_model=List[Book], tags=["Books"])
@router.get("/books/featured/list", response_model=List[Book], include_in_schema=False)
async def get_featured_books(bookstore: BookstoreService = Depends(get_bookstore)):
    """Get featured books."""
    books = await bookstore.get_featured()
    return JSONResponse(content=books)


@router.get("/books/{book_id}/reviews", response_model=BookReviewsResponse, tags=["Reviews"])
async def get_book_reviews(book_id: str, bookstore: BookstoreService = Depends(get_bookstore)):
    """Get all reviews for a specific book."""
    try:
        result = await bookstore.get_reviews_for_book(book_id)
    except BookNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return JSONResponse(content=result)


@router.get("/books/{book_id}", response_model=Book, tags=["Books"])
async def get_book(book_id: str, bookstore: BookstoreService = Depends(get_bookstore)):
    """
    Get a single book by ID.

    - **book_id**: Book identifier, matched exactly
    """
    book = await bookstore.get_book_by_id(book_id)
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return JSONResponse(content=book)


@router.post(
    "/books",
    response_model=BookCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Books"]
)
async def create_book(
    book_in: BookCreate,
    api_token: str = Depends(verify_api_token),
    bookstore: BookstoreService = Depends(get_bookstore)
):
    """
    Add a book to the catalogue.

    Requires **title**, **author** and **price**. Any other fields are stored as sent.
    """
    try:
        book = await bookstore.create_book(book_in)
    except StorageError as e:
        logger.error("Failed to save book", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save book"
        )

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"message": "Book added successfully", "book": book}
    )


# Reviews endpoints
@router.post(
    "/reviews",
    response_model=ReviewCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Reviews"]
)
async def create_review(
    review_in: ReviewCreate,
    api_token: str = Depends(verify_api_token),
    bookstore: BookstoreService = Depends(get_bookstore)
):
    """
    Add a review and refresh the book's rating and review count.

    Requires **bookId**, **author**, **rating** (1-5) and **comment**.
    """
    try:
        review, book = await bookstore.create_review(review_in)
    except BookNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except StorageError as e:
        logger.error("Failed to save review", book_id=review_in.bookId, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save review"
        )

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "message": "Review added successfully",
            "review": review,
            "updatedBookRating": book["rating"],
            "updatedReviewCount": book["reviewCount"]
        }
    )


def create_app(
    settings: Optional[APIConfig] = None,
    book_storage: Optional[CollectionStorage] = None,
    review_storage: Optional[CollectionStorage] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: API settings, defaults to the environment config
        book_storage: Catalogue backend, defaults to the books JSON file
        review_storage: Review backend, defaults to the reviews JSON file
    """
    settings = settings or config
    book_storage = book_storage or JsonFileStorage(settings.get_books_file_path(), "books")
    review_storage = review_storage or JsonFileStorage(settings.get_reviews_file_path(), "reviews")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting Amana Bookstore API")

        bookstore = BookstoreService(book_storage, review_storage)
        try:
            bookstore.load()
        except StorageError as e:
            logger.error("Failed to load bookstore data", error=str(e))
            raise
        app.state.bookstore = bookstore

        yield

        logger.info("Shutting down Amana Bookstore API")
        app.state.bookstore = None

    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description + """

    ## Authentication

    Adding books and reviews requires a token in the Authorization header:

    ```
    Authorization: Bearer your_token_here
    ```

    A missing token is rejected with 401, an unknown one with 403.
    """,
        version=settings.api_version,
        lifespan=lifespan
    )
    app.state.settings = settings

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with its outcome and duration."""
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2)
        )
        return response

    # Exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_content(str(exc.detail)),
            headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        """Report request validation failures as 400."""
        errors = exc.errors()
        missing = [
            str(error["loc"][-1]) for error in errors
            if error.get("type") in PRESENCE_ERRORS and len(error.get("loc", ())) > 1
        ]
        if missing:
            message = f"Missing required fields: {', '.join(missing)}"
        elif any(error.get("type") == "json_invalid" for error in errors):
            message = "Request body is not valid JSON"
        elif errors and len(errors[0].get("loc", ())) > 1:
            message = f"Invalid value for '{errors[0]['loc'][-1]}': {errors[0]['msg']}"
        elif errors:
            message = f"Invalid request body: {errors[0]['msg']}"
        else:
            message = "Invalid request body"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_content(message)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle general exceptions."""
        logger.error("Unhandled exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_content(
                "Internal server error",
                detail=str(exc) if settings.debug else None
            )
        )

    app.include_router(router)
    return app


# Create FastAPI application
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="info"
    )
