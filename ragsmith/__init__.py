"""ragsmith: retrieval-augmented code editing agent."""

__version__ = "0.1.0"
