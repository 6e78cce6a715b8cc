"""
Sampling configuration and stride selection.

Metadata scans do not visit every node of a large label. Instead they take
every k-th node, where k (the stride) is derived from the label's
population and the desired sample size, with a little random jitter so
repeated scans do not always land on the same nodes.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from graph.exceptions import MalformedInputError

# Stride meaning "take every node"
NO_SKIP = -1

DEFAULT_SAMPLE = 1000
DEFAULT_MAX_RELS = 100


def sample_stride(population: int, desired: int, rng: Optional[random.Random] = None) -> int:
    """
    Pick the sampling stride for a label.

    The ideal stride is ``population // desired``. A value is drawn
    uniformly from ``[floor(0.9 * ideal), ceil(1.1 * ideal))``. When that
    interval is empty, or the draw is 0, every node is taken.

    Args:
        population: Number of nodes carrying the label
        desired: Desired sample size; ``-1`` (or any non-positive value) disables sampling
        rng: Random source, mainly for tests

    Returns:
        A stride >= 1, or ``NO_SKIP``
    """
    if desired <= 0 or population <= 0:
        return NO_SKIP

    ideal = population // desired
    low = math.floor(ideal - 0.1 * ideal)
    high = math.ceil(ideal + 0.1 * ideal)
    if low >= high:
        return NO_SKIP

    stride = (rng or random).randrange(low, high)
    return NO_SKIP if stride == 0 else stride


def is_sampled(position: int, stride: int) -> bool:
    """
    Whether the node at 1-based ``position`` is part of the sample.

    A non-positive stride means every node is sampled.
    """
    return stride <= 0 or position % stride == 0


@dataclass
class SampleMetaConfig:
    """
    Sampling options accepted by the metadata operations.

    Attributes:
        sample: Desired sample size per label; -1 scans everything
        max_rels: Relationships inspected per node by existence checks; -1 for no limit
    """
    sample: int = DEFAULT_SAMPLE
    max_rels: int = DEFAULT_MAX_RELS

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "SampleMetaConfig":
        config = config or {}
        try:
            sample = int(config.get("sample", DEFAULT_SAMPLE))
            max_rels = int(config.get("maxRels", DEFAULT_MAX_RELS))
        except (TypeError, ValueError) as e:
            raise MalformedInputError(f"Invalid sampling config {config}: {e}") from e
        return cls(sample=sample, max_rels=max_rels)


@dataclass
class MetaConfig:
    """
    Label and type filters plus sampling for metadata operations.

    An empty include list means "everything"; excludes are applied after
    includes.
    """
    include_labels: List[str] = field(default_factory=list)
    exclude_labels: List[str] = field(default_factory=list)
    include_rels: List[str] = field(default_factory=list)
    exclude_rels: List[str] = field(default_factory=list)
    sampling: SampleMetaConfig = field(default_factory=SampleMetaConfig)

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "MetaConfig":
        config = config or {}
        return cls(
            include_labels=_name_list(config, "includeLabels"),
            exclude_labels=_name_list(config, "excludeLabels"),
            include_rels=_name_list(config, "includeRels"),
            exclude_rels=_name_list(config, "excludeRels"),
            sampling=SampleMetaConfig.from_dict(config),
        )

    def accepts_label(self, label: str) -> bool:
        if self.include_labels and label not in self.include_labels:
            return False
        return label not in self.exclude_labels

    def accepts_rel(self, rel_type: str) -> bool:
        if self.include_rels and rel_type not in self.include_rels:
            return False
        return rel_type not in self.exclude_rels


def _name_list(config: Dict[str, Any], key: str) -> List[str]:
    value = config.get(key) or []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple, set)) or not all(isinstance(v, str) for v in value):
        raise MalformedInputError(f"{key} must be a list of names, got {value!r}")
    return list(value)
