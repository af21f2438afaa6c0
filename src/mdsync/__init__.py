"""Keep a Markdown file and a Word document in sync."""

__version__ = "0.1.0"
