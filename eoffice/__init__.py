"""E-Office letters: drafting, approval numbering and PDF generation."""

__version__ = "1.0.0"
