"""
Catalog package: the data-access layer behind the book catalog API.

This package contains:
- Domain models for user profiles, books and admin tokens
- Key-value and blob storage backed by MongoDB
- A password/token identity provider
- The catalog service with favorites, recent and book asset operations
"""

__version__ = "1.0.0"
