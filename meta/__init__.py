"""
Graph metadata module for graphmeta.

- Sampling stride selection and metadata configuration
- Count-store statistics
- Sampled per-label / per-type property and relationship metadata
- The label/type meta-graph with existence probing
- A schema view combining the above
"""

from meta.collector import ElementType, MetadataKey, MetaItem, MetaItemCollector, MetaResult
from meta.graph_builder import MetaGraph, MetaGraphBuilder, Pattern, relationship_exists
from meta.sampling import NO_SKIP, MetaConfig, SampleMetaConfig, sample_stride
from meta.schema import build_schema
from meta.stats import MetaStats, StatsAggregator
from meta.types import Types, is_type, type_name, types_of

__all__ = [
    "ElementType",
    "MetaConfig",
    "MetaGraph",
    "MetaGraphBuilder",
    "MetaItem",
    "MetaItemCollector",
    "MetaResult",
    "MetaStats",
    "MetadataKey",
    "NO_SKIP",
    "Pattern",
    "SampleMetaConfig",
    "StatsAggregator",
    "Types",
    "build_schema",
    "is_type",
    "relationship_exists",
    "sample_stride",
    "type_name",
    "types_of",
]
