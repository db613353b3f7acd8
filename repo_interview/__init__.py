"""Repository indexing and code-grounded interview question generation."""

__version__ = "0.1.0"
