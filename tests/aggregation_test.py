"""Tests for the dump_exporter.application.aggregation module."""

import pytest

from dump_exporter.application.aggregation import (
    Aggregator,
    AggregatorFactory,
    Breakdown,
    count_post_ids,
    source_domain,
    to_bool,
    to_number,
)
from dump_exporter.application.domain import DatasetType, MetricSpec
from dump_exporter.application.media import parse_file_extension


def _post(**fields):
    record = {
        "id": "1",
        "rating": "s",
        "image_width": "1920",
        "image_height": "1080",
        "tag_string": "",
        "file_ext": "png",
        "source": "",
        "fav_count": "0",
        "file_size": "0",
        "is_deleted": "f",
        "is_pending": "f",
        "is_flagged": "f",
    }
    record.update(fields)
    return record


class TestSourceDomain:
    """Tests for reducing post sources to registrable domains."""

    def test_not_a_url(self):
        assert source_domain("not a url") == "invalid"

    @pytest.mark.parametrize("source", [None, "", "   ", "\n\n"])
    def test_absent_source(self, source):
        assert source_domain(source) == "unknown"

    def test_public_suffix_is_respected(self):
        assert source_domain("https://sub.example.co.uk/x") == "example.co.uk"

    def test_subdomains_collapse(self):
        assert source_domain("https://www.furaffinity.net/view/1/") == (
            "furaffinity.net"
        )

    def test_first_of_several_sources(self):
        source = "https://twitter.com/a/status/1\nhttps://www.pixiv.net/x"
        assert source_domain(source) == "twitter.com"

    def test_malformed_url(self):
        assert source_domain("http://[::1") == "invalid"

    def test_host_without_public_suffix(self):
        assert source_domain("http://192.168.0.1/img.png") == "192.168.0.1"


class TestCoercion:
    """Tests for lenient field parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("12", 12.0), ("-3", -3.0), ("1.5", 1.5), ("", 0.0), (None, 0.0),
         ("abc", 0.0), ("nan", 0.0), ("inf", 0.0)],
    )
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [("t", True), ("true", True), ("TRUE", True), ("f", False),
         ("", False), (None, False), ("false", False)],
    )
    def test_to_bool(self, value, expected):
        assert to_bool(value) is expected

    @pytest.mark.parametrize(
        "value,expected",
        [("1,2,3", 3), ("{1,2,3}", 3), ("{}", 0), ("", 0), (None, 0)],
    )
    def test_count_post_ids(self, value, expected):
        assert count_post_ids(value) == expected


class TestParseFileExtension:
    """Tests for media categories."""

    @pytest.mark.parametrize(
        "value,expected",
        [("png", ("png", "image")), (" WEBM ", ("webm", "video")),
         ("swf", ("swf", "flash")), ("zip", ("unknown", "unknown")),
         ("", ("unknown", "unknown")), (None, ("unknown", "unknown"))],
    )
    def test_categories(self, value, expected):
        assert parse_file_extension(value) == expected


class TestAggregator:
    """Tests for the generic folding logic."""

    def test_weights_and_multiple_keys(self):
        spec = MetricSpec("letters", "Letters", ("letter",))
        aggregator = Aggregator("test", [
            Breakdown(
                spec,
                lambda record: [(c,) for c in record["word"]],
                weight=lambda record: float(record["n"]),
            ),
        ])

        aggregator.consume({"word": "ab", "n": "2"})
        aggregator.consume({"word": "b", "n": "1"})

        assert aggregator.snapshot("letters") == {("a",): 2.0, ("b",): 3.0}
        assert aggregator.records == 2

    def test_failing_record_changes_nothing(self):
        good = MetricSpec("good", "Good", ("v",))
        bad = MetricSpec("bad", "Bad", ("v",))
        aggregator = Aggregator("test", [
            Breakdown(good, lambda record: [(record["v"],)]),
            Breakdown(bad, lambda record: [(record["missing"],)]),
        ])

        with pytest.raises(KeyError):
            aggregator.consume({"v": "x"})

        assert aggregator.snapshot("good") == {}
        assert aggregator.records == 0

    def test_threshold_drops_rare_keys(self):
        spec = MetricSpec("tags", "Tags", ("tag",))
        aggregator = Aggregator("test", [
            Breakdown(spec, lambda record: [(record["tag"],)], threshold=2),
        ])
        for tag in ["a", "a", "a", "b", "b", "c"]:
            aggregator.consume({"tag": tag})

        assert aggregator.snapshot("tags") == {("a",): 3.0, ("b",): 2.0}


class TestPostAggregator:
    """Tests for the breakdowns of the posts dump."""

    def test_rating_counts_and_absence(self):
        aggregator = AggregatorFactory().create(DatasetType.POSTS)
        for rating in "s" * 4 + "q" * 2 + "e" * 7:
            aggregator.consume(_post(rating=rating))

        assert aggregator.snapshot("posts_by_rating") == {
            ("s",): 4.0, ("q",): 2.0, ("e",): 7.0,
        }

        aggregator = AggregatorFactory().create(DatasetType.POSTS)
        aggregator.consume(_post(rating="s"))

        assert aggregator.snapshot("posts_by_rating") == {("s",): 1.0}

    def test_resolution_and_media_type(self):
        aggregator = AggregatorFactory().create(DatasetType.POSTS)
        aggregator.consume(_post(file_ext="gif", image_width="640",
                                 image_height="480"))
        aggregator.consume(_post(file_ext="webm", image_width="640",
                                 image_height="480"))
        aggregator.consume(_post(file_ext="png", image_width="",
                                 image_height="oops"))

        assert aggregator.snapshot("posts_by_resolution") == {
            ("640x480", "true", "false", "true", "false"): 1.0,
            ("640x480", "false", "true", "false", "false"): 1.0,
            ("0x0", "false", "false", "true", "false"): 1.0,
        }

    def test_tag_threshold(self):
        aggregator = AggregatorFactory(tag_threshold=2).create(
            DatasetType.POSTS
        )
        aggregator.consume(_post(tag_string="wolf solo solo"))
        aggregator.consume(_post(tag_string="wolf duo"))
        aggregator.consume(_post(tag_string="wolf"))

        assert aggregator.snapshot("posts_by_tag") == {("wolf",): 3.0}

    def test_source_domains_with_sentinels(self):
        aggregator = AggregatorFactory(source_threshold=1).create(
            DatasetType.POSTS
        )
        for source in ["https://a.example.co.uk/1", "http://example.co.uk/2",
                       "not a url", "", "https://twitter.com/x"]:
            aggregator.consume(_post(source=source))

        assert aggregator.snapshot("posts_by_source_domain") == {
            ("example.co.uk",): 2.0,
            ("invalid",): 1.0,
            ("unknown",): 1.0,
            ("twitter.com",): 1.0,
        }

    def test_status_and_totals(self):
        aggregator = AggregatorFactory().create(DatasetType.POSTS)
        aggregator.consume(_post(is_deleted="t", fav_count="5",
                                 file_size="100"))
        aggregator.consume(_post(is_pending="t", is_flagged="t",
                                 fav_count="x"))
        aggregator.consume(_post(fav_count="2", file_size="50"))

        assert aggregator.snapshot("posts_by_status") == {
            ("deleted",): 1.0, ("pending",): 1.0, ("flagged",): 1.0,
            ("active",): 1.0,
        }
        assert aggregator.snapshot("posts_total") == {(): 3.0}
        assert aggregator.snapshot("posts_favorites_total") == {(): 7.0}
        assert aggregator.snapshot("posts_file_size_bytes_total") == {
            (): 150.0
        }


class TestOtherAggregators:
    """Tests for the breakdowns of the smaller dumps."""

    def test_pools(self):
        aggregator = AggregatorFactory().create(DatasetType.POOLS)
        aggregator.consume({"category": "series", "is_active": "t",
                            "post_ids": "{1,2,3}"})
        aggregator.consume({"category": "collection", "is_active": "f",
                            "post_ids": ""})

        assert aggregator.snapshot("pools_by_category") == {
            ("series",): 1.0, ("collection",): 1.0,
        }
        assert aggregator.snapshot("pools_by_active") == {
            ("true",): 1.0, ("false",): 1.0,
        }
        assert aggregator.snapshot("pool_posts_total") == {(): 3.0}

    def test_tags(self):
        aggregator = AggregatorFactory().create(DatasetType.TAGS)
        aggregator.consume({"name": "wolf", "category": "5",
                            "post_count": "10"})
        aggregator.consume({"name": "fox", "category": "5",
                            "post_count": "4"})
        aggregator.consume({"name": "solo", "category": "0",
                            "post_count": ""})

        assert aggregator.snapshot("tags_by_category") == {
            ("5",): 2.0, ("0",): 1.0,
        }
        assert aggregator.snapshot("tag_posts_by_category") == {
            ("5",): 14.0, ("0",): 0.0,
        }

    @pytest.mark.parametrize(
        "dataset_type,metric",
        [(DatasetType.TAG_ALIASES, "tag_aliases_by_status"),
         (DatasetType.TAG_IMPLICATIONS, "tag_implications_by_status")],
    )
    def test_status_dumps(self, dataset_type, metric):
        aggregator = AggregatorFactory().create(dataset_type)
        for status in ["active", "active", "deleted", ""]:
            aggregator.consume({"status": status})

        assert aggregator.snapshot(metric) == {
            ("active",): 2.0, ("deleted",): 1.0, ("unknown",): 1.0,
        }

    def test_wiki_pages(self):
        aggregator = AggregatorFactory().create(DatasetType.WIKI_PAGES)
        aggregator.consume({"is_locked": "t"})
        aggregator.consume({"is_locked": "f"})
        aggregator.consume({"is_locked": "f"})

        assert aggregator.snapshot("wiki_pages_by_locked") == {
            ("true",): 1.0, ("false",): 2.0,
        }
        assert aggregator.snapshot("wiki_pages_total") == {(): 3.0}


class TestFlush:
    """Tests for publishing aggregates into the Prometheus sink."""

    def test_flush_publishes_snapshot(self, sink, registry):
        aggregator = AggregatorFactory().create(DatasetType.POSTS)
        for rating in ["s", "s", "e"]:
            aggregator.consume(_post(rating=rating))

        aggregator.flush(sink)

        assert registry.get_sample_value(
            "posts_by_rating", {"rating": "s"}
        ) == 2.0
        assert registry.get_sample_value(
            "posts_by_rating", {"rating": "e"}
        ) == 1.0
        assert registry.get_sample_value(
            "posts_by_rating", {"rating": "q"}
        ) is None
        assert registry.get_sample_value("posts_total") == 3.0

    def test_next_cycle_replaces_previous_values(self, sink, registry):
        first = AggregatorFactory().create(DatasetType.POSTS)
        first.consume(_post(rating="q"))
        first.flush(sink)

        second = AggregatorFactory().create(DatasetType.POSTS)
        second.consume(_post(rating="s"))
        second.flush(sink)

        assert registry.get_sample_value(
            "posts_by_rating", {"rating": "q"}
        ) is None
        assert registry.get_sample_value(
            "posts_by_rating", {"rating": "s"}
        ) == 1.0
        assert registry.get_sample_value("posts_total") == 1.0
