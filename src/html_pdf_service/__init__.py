"""
HTML to PDF Service package.

This module provides a FastAPI application that renders posted HTML into a
PDF download using the wkhtmltox engine.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
