"""
PDF Page Image Service package.

This module provides a FastAPI application that accepts one uploaded PDF at
`/upload` and streams back a ZIP archive with one rendered image per page.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
