"""
Mental Sum: personal mental-math trainer.

Components:
- core: data model, strategy catalogue, performance thresholds, errors
- storage: StorageManager over a single persisted JSON document
- engine: adaptive problem generation
- session: intents, session lifecycle and statistics aggregation
- cli: terminal front end
"""

__version__ = "1.0.0"
