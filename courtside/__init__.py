"""Basketball game-lifecycle ingestion and stats-aggregation pipeline."""

__version__ = "1.0.0"
