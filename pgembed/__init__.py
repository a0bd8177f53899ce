"""Download, initialise, start and stop a throwaway PostgreSQL server."""

__version__ = "0.1.0"

__all__ = [
    "cache_locator",
    "config",
    "decompression",
    "embedded_postgres",
    "errors",
    "logs",
    "prepare_database",
    "remote_fetch",
    "rename",
    "version_strategy",
    "wire",
]