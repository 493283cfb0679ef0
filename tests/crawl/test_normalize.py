"""Tests for nameindex.crawl.normalize."""

from __future__ import annotations

import copy

import pytest

from nameindex.crawl.normalize import normalize, normalize_key


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("account.type", "account_type"),
        ("$oid", "_oid"),
        ("$a.b.c", "_a_b_c"),
        ("plain", "plain"),
        ("mid$dle", "mid$dle"),
        ("", ""),
    ],
)
def test_normalize_key(key, expected):
    assert normalize_key(key) == expected


class TestNormalize:
    def test_top_level_keys(self):
        assert normalize({"account.type": "x", "$oid": "1"}) == {"account_type": "x", "_oid": "1"}

    def test_nested_dicts_and_lists(self):
        doc = {
            "profile": {"@type": "Person", "image.url": "u"},
            "account": [{"service.name": "twitter", "$ref": 1}, "plain", 3],
        }
        assert normalize(doc) == {
            "profile": {"@type": "Person", "image_url": "u"},
            "account": [{"service_name": "twitter", "_ref": 1}, "plain", 3],
        }

    def test_values_untouched(self):
        doc = {"site": "example.com", "price": "$5"}
        assert normalize(doc) == doc

    def test_idempotent(self):
        doc = {"a.b": {"$c": [{"d.e": 1}]}, "f": None}
        once = normalize(doc)
        assert normalize(once) == once

    def test_input_not_mutated(self):
        doc = {"a.b": {"$c": [{"d.e": 1}]}}
        snapshot = copy.deepcopy(doc)
        normalize(doc)
        assert doc == snapshot

    def test_returns_new_containers(self):
        doc = {"inner": {"k": 1}, "items": [1]}
        out = normalize(doc)
        assert out == doc
        assert out["inner"] is not doc["inner"]
        assert out["items"] is not doc["items"]

    def test_collision_safe_key_wins(self):
        assert normalize({"a.b": 1, "a_b": 2}) == {"a_b": 2}
        assert normalize({"a_b": 2, "a.b": 1}) == {"a_b": 2}

    def test_collision_between_rewritten_keys_is_order_independent(self):
        # both rewrite to "_a_b"; "$a.b" sorts before "$a_b"
        first = normalize({"$a.b": 1, "$a_b": 2})
        second = normalize({"$a_b": 2, "$a.b": 1})
        assert first == second == {"_a_b": 1}

    def test_rewritten_keys_that_do_not_collide_are_kept(self):
        assert normalize({"a.b": 1, "$a_b": 2}) == {"a_b": 1, "_a_b": 2}

    @pytest.mark.parametrize("value", [None, 1, "text", 2.5, True])
    def test_primitives_pass_through(self, value):
        assert normalize(value) == value

    def test_every_key_is_storage_safe(self):
        doc = {"x.y": {"$z": {"p.q.r": [{"$s.t": 1}]}}}

        def keys(node):
            if isinstance(node, dict):
                for k, v in node.items():
                    yield k
                    yield from keys(v)
            elif isinstance(node, list):
                for item in node:
                    yield from keys(item)

        for key in keys(normalize(doc)):
            assert "." not in key
            assert not key.startswith("$")
