"""An embeddable, versioned wide-column store with column families, SSTables,
compaction, aggregations, batches and an asyncio wrapper."""

__version__ = "0.1.0"