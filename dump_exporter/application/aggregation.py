"""
Folding of dump records into dimension-keyed counters.

Every dataset type gets one Aggregator built from a list of Breakdowns. A
breakdown maps a record to the label tuples it counts towards, optionally
weighted by a numeric field. Counts are kept locally while a dump streams
and published to the metrics sink as one snapshot per metric at the end of
the pass.
"""

import collections
import dataclasses
import logging
import math
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

import tldextract

from .domain import DatasetType, LabelKey, MetricSpec, MetricsSink, Record
from .media import parse_file_extension

UNKNOWN_SOURCE = "unknown"
INVALID_SOURCE = "invalid"
UNKNOWN_VALUE = "unknown"

_TRUE_VALUES = frozenset({"t", "true", "1", "yes"})

# Uses the public suffix snapshot bundled with tldextract; never fetches.
_extract_domain = tldextract.TLDExtract(suffix_list_urls=())


# --- Field coercion ---

def to_number(value: Optional[str]) -> float:
    """Parses a numeric field leniently; anything unparsable becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_int(value: Optional[str]) -> int:
    return int(to_number(value))


def to_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


def bool_label(value: bool) -> str:
    return "true" if value else "false"


def or_unknown(value: Optional[str]) -> str:
    value = (value or "").strip()
    return value or UNKNOWN_VALUE


def source_domain(source: Optional[str]) -> str:
    """
    Reduces a post source to its registrable domain.

    Sources may list several URLs, one per line; the first one is used.
    Empty sources map to 'unknown' and anything without a hostname maps to
    'invalid'. Hosts without a public suffix (IP addresses, intranet names)
    are returned as they are.
    """
    lines = [line.strip() for line in (source or "").splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return UNKNOWN_SOURCE

    try:
        hostname = urlsplit(lines[0]).hostname
    except ValueError:
        return INVALID_SOURCE
    if not hostname:
        return INVALID_SOURCE

    extracted = _extract_domain(hostname)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}"
    return hostname


def count_post_ids(value: Optional[str]) -> int:
    """Counts the ids of a pool's post list ('1,2,3' or '{1,2,3}')."""
    items = (value or "").strip().strip("{}").split(",")
    return sum(1 for item in items if item.strip())


# --- Aggregation ---

def _one(record: Record) -> float:
    return 1.0


def _total(record: Record) -> Iterable[LabelKey]:
    return [()]


@dataclasses.dataclass(frozen=True)
class Breakdown:
    """
    One counted dimension.

    Attributes:
        spec: The gauge the counts are published as.
        keys: Returns the label tuples a record counts towards.
        weight: Amount added per key, 1 by default.
        threshold: Minimum count a key needs to be published. Keys below
                   it are dropped, not zeroed.
    """

    spec: MetricSpec
    keys: Callable[[Record], Iterable[LabelKey]]
    weight: Callable[[Record], float] = _one
    threshold: float = 0


class Aggregator:
    """Accumulates the breakdowns of one dataset type over a streaming pass."""

    def __init__(self, dataset_type: str, breakdowns: List[Breakdown]):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.dataset_type = dataset_type
        self.breakdowns = breakdowns
        self.records = 0
        self._counts: Dict[str, Dict[LabelKey, float]] = {
            breakdown.spec.name: collections.defaultdict(float)
            for breakdown in breakdowns
        }

    def consume(self, record: Record):
        """
        Folds one record into every breakdown.

        All keys are computed before any count changes, so a record that
        fails in one breakdown leaves the others untouched as well.
        """
        updates = [
            (self._counts[breakdown.spec.name], list(breakdown.keys(record)),
             breakdown.weight(record))
            for breakdown in self.breakdowns
        ]
        for counts, keys, weight in updates:
            for key in keys:
                counts[key] += weight
        self.records += 1

    def snapshot(self, name: str) -> Dict[LabelKey, float]:
        """Returns the publishable counts of a metric, threshold applied."""
        breakdown = next(b for b in self.breakdowns if b.spec.name == name)
        return {
            key: value
            for key, value in self._counts[name].items()
            if value >= breakdown.threshold
        }

    def flush(self, sink: MetricsSink):
        """Publishes every breakdown as a snapshot that replaces the last one."""
        for breakdown in self.breakdowns:
            sink.declare(breakdown.spec)
            sink.replace(breakdown.spec.name, self.snapshot(breakdown.spec.name))
        self.logger.info(
            f"Published {len(self.breakdowns)} metrics for "
            f"{self.dataset_type} from {self.records} records"
        )


# --- Breakdowns per dataset type ---

def _post_rating(record: Record) -> Iterable[LabelKey]:
    return [(or_unknown(record.get("rating")),)]


def _post_resolution(record: Record) -> Iterable[LabelKey]:
    width = to_int(record.get("image_width"))
    height = to_int(record.get("image_height"))
    extension, category = parse_file_extension(record.get("file_ext"))
    return [(
        f"{width}x{height}",
        bool_label(extension == "gif"),
        bool_label(category == "video"),
        bool_label(category == "image"),
        bool_label(category == "flash"),
    )]


def _post_file_type(record: Record) -> Iterable[LabelKey]:
    return [parse_file_extension(record.get("file_ext"))]


def _post_status(record: Record) -> Iterable[LabelKey]:
    statuses = [
        (status,)
        for status in ("deleted", "pending", "flagged")
        if to_bool(record.get(f"is_{status}"))
    ]
    return statuses or [("active",)]


def _post_tags(record: Record) -> Iterable[LabelKey]:
    return [(tag,) for tag in set((record.get("tag_string") or "").split())]


def _post_source(record: Record) -> Iterable[LabelKey]:
    return [(source_domain(record.get("source")),)]


def _field_key(column: str) -> Callable[[Record], Iterable[LabelKey]]:
    def keys(record: Record) -> Iterable[LabelKey]:
        return [(or_unknown(record.get(column)),)]
    return keys


def _bool_key(column: str) -> Callable[[Record], Iterable[LabelKey]]:
    def keys(record: Record) -> Iterable[LabelKey]:
        return [(bool_label(to_bool(record.get(column))),)]
    return keys


def _field_weight(column: str) -> Callable[[Record], float]:
    def weight(record: Record) -> float:
        return to_number(record.get(column))
    return weight


class AggregatorFactory:
    """Builds a fresh Aggregator per dataset type for every cycle."""

    def __init__(self, tag_threshold: int = 0, source_threshold: int = 0):
        self.tag_threshold = tag_threshold
        self.source_threshold = source_threshold

    def _posts(self) -> List[Breakdown]:
        return [
            Breakdown(
                MetricSpec("posts_by_rating", "Number of posts per rating",
                           ("rating",)),
                _post_rating,
            ),
            Breakdown(
                MetricSpec(
                    "posts_by_resolution",
                    "Number of posts per resolution and media type",
                    ("resolution", "is_gif", "is_video", "is_image",
                     "is_flash"),
                ),
                _post_resolution,
            ),
            Breakdown(
                MetricSpec("posts_by_file_type",
                           "Number of posts per file extension",
                           ("extension", "category")),
                _post_file_type,
            ),
            Breakdown(
                MetricSpec("posts_by_status", "Number of posts per status",
                           ("status",)),
                _post_status,
            ),
            Breakdown(
                MetricSpec("posts_by_tag", "Number of posts per tag",
                           ("tag",)),
                _post_tags,
                threshold=self.tag_threshold,
            ),
            Breakdown(
                MetricSpec("posts_by_source_domain",
                           "Number of posts per source domain", ("domain",)),
                _post_source,
                threshold=self.source_threshold,
            ),
            Breakdown(
                MetricSpec("posts_total", "Number of posts in the dump"),
                _total,
            ),
            Breakdown(
                MetricSpec("posts_favorites_total",
                           "Sum of fav_count over all posts"),
                _total,
                weight=_field_weight("fav_count"),
            ),
            Breakdown(
                MetricSpec("posts_file_size_bytes_total",
                           "Sum of file_size over all posts"),
                _total,
                weight=_field_weight("file_size"),
            ),
        ]

    def _pools(self) -> List[Breakdown]:
        return [
            Breakdown(
                MetricSpec("pools_by_category", "Number of pools per category",
                           ("category",)),
                _field_key("category"),
            ),
            Breakdown(
                MetricSpec("pools_by_active", "Number of pools per is_active",
                           ("is_active",)),
                _bool_key("is_active"),
            ),
            Breakdown(
                MetricSpec("pool_posts_total",
                           "Number of post references across all pools"),
                _total,
                weight=lambda record: count_post_ids(record.get("post_ids")),
            ),
        ]

    def _tags(self) -> List[Breakdown]:
        return [
            Breakdown(
                MetricSpec("tags_by_category", "Number of tags per category",
                           ("category",)),
                _field_key("category"),
            ),
            Breakdown(
                MetricSpec("tag_posts_by_category",
                           "Sum of tag post_count per category",
                           ("category",)),
                _field_key("category"),
                weight=_field_weight("post_count"),
            ),
        ]

    def _status(self, dataset_type: DatasetType) -> List[Breakdown]:
        noun = dataset_type.value.replace("_", " ")
        return [
            Breakdown(
                MetricSpec(f"{dataset_type.value}_by_status",
                           f"Number of {noun} per status", ("status",)),
                _field_key("status"),
            ),
        ]

    def _wiki_pages(self) -> List[Breakdown]:
        return [
            Breakdown(
                MetricSpec("wiki_pages_by_locked",
                           "Number of wiki pages per is_locked",
                           ("is_locked",)),
                _bool_key("is_locked"),
            ),
            Breakdown(
                MetricSpec("wiki_pages_total", "Number of wiki pages"),
                _total,
            ),
        ]

    def create(self, dataset_type: DatasetType) -> Aggregator:
        """Returns an empty aggregator for `dataset_type`."""
        if dataset_type is DatasetType.POSTS:
            breakdowns = self._posts()
        elif dataset_type is DatasetType.POOLS:
            breakdowns = self._pools()
        elif dataset_type is DatasetType.TAGS:
            breakdowns = self._tags()
        elif dataset_type in (
            DatasetType.TAG_ALIASES, DatasetType.TAG_IMPLICATIONS
        ):
            breakdowns = self._status(dataset_type)
        elif dataset_type is DatasetType.WIKI_PAGES:
            breakdowns = self._wiki_pages()
        else:
            raise ValueError(f"Unsupported dataset type {dataset_type!r}")
        return Aggregator(dataset_type.value, breakdowns)
