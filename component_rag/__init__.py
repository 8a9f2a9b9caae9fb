"""component-rag: UI component extraction and semantic retrieval."""

__version__ = "0.3.0"
