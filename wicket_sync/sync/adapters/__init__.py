"""Remote system adapters used by the sync pipelines."""
