"""graphloom - identifier migration for a JSON-in-SQLite property graph."""

__version__ = "0.1.0"
