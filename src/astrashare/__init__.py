"""Client-side task orchestration for the AstraShare analysis service."""

__version__ = "0.1.0"
