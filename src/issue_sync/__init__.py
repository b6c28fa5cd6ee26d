"""Issue sync: retry-governed source to document store synchronization."""

__version__ = "0.1.0"
