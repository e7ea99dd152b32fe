"""
PDF Image Service package.

This module provides a FastAPI application that renders a range of PDF pages
to raster images, returned as one stacked image or a zip archive.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
