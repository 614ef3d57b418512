"""
FastAPI RESTful API for the Amana Bookstore.

This module provides a small REST API for:
- Book catalogue browsing, date-range search, top-rated and featured lists
- Reviews per book with derived ratings
- Token-protected writes persisted to flat JSON files
"""
