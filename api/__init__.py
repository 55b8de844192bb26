"""
FastAPI RESTful API for the Book Catalog.

This module provides a REST API for:
- Account signup, sign-in and profile lookup
- Book catalog browsing, search and category filtering
- Per-user favorites and recently viewed books
- An admin panel for uploading and deleting books
"""
