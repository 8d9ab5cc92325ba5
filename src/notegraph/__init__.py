"""notegraph — hybrid vector + typed-link graph retrieval over a notes index."""

__version__ = "0.1.0"
