"""
API models and schemas for the FastAPI application.
"""

import math
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _is_finite(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, dict):
        return all(_is_finite(item) for item in value.values())
    if isinstance(value, list):
        return all(_is_finite(item) for item in value)
    return True


class Book(BaseModel):
    """Book as stored in the catalogue."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    price: float = Field(..., description="Book price")
    rating: float = Field(0, ge=0, le=5, description="Mean review rating, one decimal")
    reviewCount: int = Field(0, ge=0, description="Number of reviews for the book")
    datePublished: Optional[str] = Field(None, description="Publication date")
    inStock: bool = Field(True, description="Whether the book is in stock")
    featured: bool = Field(False, description="Whether the book is featured")


class ScoredBook(Book):
    """Book with its top-rated score (rating * reviewCount)."""
    score: float = Field(..., description="rating multiplied by reviewCount")


class BookCreate(BaseModel):
    """Request body for adding a book. Unknown fields are kept verbatim."""
    model_config = ConfigDict(extra="allow")

    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    price: float = Field(..., allow_inf_nan=False, description="Book price")
    datePublished: Optional[str] = Field(None, description="Publication date, defaults to today")
    inStock: bool = Field(True, description="Whether the book is in stock")
    featured: bool = Field(False, description="Whether the book is featured")

    @model_validator(mode="after")
    def validate_extra_numbers(self):
        """Reject NaN and infinity in extra fields; they are not valid JSON."""
        for name, value in (self.model_extra or {}).items():
            if not _is_finite(value):
                raise ValueError(f"{name} must not contain NaN or infinite numbers")
        return self


class Review(BaseModel):
    """Review as stored in the review collection."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Review identifier (review-<N>)")
    bookId: str = Field(..., description="Identifier of the reviewed book")
    author: str = Field(..., description="Review author")
    rating: int = Field(..., description="Rating (1-5)")
    comment: str = Field(..., description="Review text")
    timestamp: Optional[str] = Field(None, description="When the review was written")
    verified: bool = Field(False, description="Verified purchase flag")


class ReviewCreate(BaseModel):
    """Request body for adding a review."""
    bookId: str = Field(..., min_length=1, description="Identifier of the reviewed book")
    author: str = Field(..., min_length=1, description="Review author")
    rating: int = Field(..., description="Rating (1-5)")
    comment: str = Field(..., min_length=1, description="Review text")
    timestamp: Optional[str] = Field(None, description="Defaults to the creation time")
    verified: bool = Field(False, description="Verified purchase flag")


class BookReviewsResponse(BaseModel):
    """Reviews for a single book."""
    bookId: str = Field(..., description="Book identifier")
    bookTitle: str = Field(..., description="Book title")
    totalReviews: int = Field(..., description="Number of reviews returned")
    reviews: List[Review] = Field(..., description="Reviews in storage order")


class BookCreatedResponse(BaseModel):
    """Response for a created book."""
    message: str = Field(..., description="Outcome message")
    book: Book = Field(..., description="The stored book")


class ReviewCreatedResponse(BaseModel):
    """Response for a created review."""
    message: str = Field(..., description="Outcome message")
    review: Review = Field(..., description="The stored review")
    updatedBookRating: float = Field(..., description="Recomputed rating of the book")
    updatedReviewCount: int = Field(..., description="Recomputed review count of the book")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    books_count: int = Field(..., description="Books held in memory")
    reviews_count: int = Field(..., description="Reviews held in memory")
