"""Markdown to OpenAPI generation and specification amendment."""

__version__ = "0.1.0"
