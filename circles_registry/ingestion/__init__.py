# Registry ingestion: paginated fetch, trust enrichment, merge, persist.

from circles_registry.ingestion.engine import (
    IngestionConfig,
    IngestionEngine,
    IngestionState,
    MergeOutcome,
    merge_records,
)

__all__ = [
    "IngestionConfig",
    "IngestionEngine",
    "IngestionState",
    "MergeOutcome",
    "merge_records",
]
