"""Lead lifecycle, board synchronization and bulk import engine."""

__version__ = "1.0.0"
