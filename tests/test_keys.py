from __future__ import annotations

import unittest

from livequery.client import Client
from livequery.config.runtime import ClientSettings
from livequery.contracts import HttpMethod, RequestDescriptor, SortClause, WhereClause
from livequery.errors import RecordStoreError
from livequery.keys import KeyTag, canonical_params, collection_key, derive_key, record_key


class NullTransport:
    async def send(self, descriptor, require_auth=False, cache_ttl_ms=None):
        raise AssertionError("key derivation must not touch the network")


def _users(*clauses):
    return RequestDescriptor(
        collection_id="users",
        where=tuple(WhereClause(field, op, value) for field, op, value in clauses),
    )


class TestDeriveKey(unittest.TestCase):
    def test_independently_built_descriptors_share_a_key(self):
        first = _users(("age", ">", 18))
        second = _users(("age", ">", 18))

        self.assertIsNot(first, second)
        self.assertEqual(derive_key(KeyTag.QUERY, first), derive_key(KeyTag.QUERY, second))

    def test_extra_filter_changes_the_key(self):
        base = derive_key(KeyTag.QUERY, _users(("age", ">", 18)))
        extended = derive_key(KeyTag.QUERY, _users(("age", ">", 18), ("city", "==", "NYC")))

        self.assertNotEqual(base, extended)

    def test_filter_order_is_part_of_identity(self):
        forward = derive_key(KeyTag.QUERY, _users(("age", ">", 18), ("city", "==", "NYC")))
        reverse = derive_key(KeyTag.QUERY, _users(("city", "==", "NYC"), ("age", ">", 18)))

        self.assertNotEqual(forward, reverse)

    def test_value_types_are_distinguished(self):
        as_int = derive_key(KeyTag.QUERY, _users(("age", "==", 1)))
        as_str = derive_key(KeyTag.QUERY, _users(("age", "==", "1")))
        as_bool = derive_key(KeyTag.QUERY, _users(("age", "==", True)))

        self.assertEqual(len({as_int, as_str, as_bool}), 3)

    def test_query_key_format(self):
        descriptor = RequestDescriptor(
            collection_id="ns/City",
            where=(WhereClause("country", "==", "UK"),),
            sort=(SortClause("name", "desc"),),
            limit=10,
        )

        self.assertEqual(
            derive_key("query", descriptor),
            'query:ns/City?{"where":[["country","==","UK"]],"sort":[["name","desc"]],"limit":10}',
        )

    def test_unfiltered_query_collapses_to_collection_key(self):
        descriptor = RequestDescriptor(collection_id="ns/City")

        self.assertEqual(derive_key(KeyTag.QUERY, descriptor), "collection:ns/City")
        self.assertEqual(derive_key(KeyTag.COLLECTION, descriptor), collection_key("ns/City"))

    def test_limit_and_cursors_change_the_key(self):
        keys = {
            derive_key(KeyTag.QUERY, RequestDescriptor(collection_id="c", limit=5)),
            derive_key(KeyTag.QUERY, RequestDescriptor(collection_id="c", limit=6)),
            derive_key(KeyTag.QUERY, RequestDescriptor(collection_id="c", after="abc")),
            derive_key(KeyTag.QUERY, RequestDescriptor(collection_id="c", before="abc")),
        }

        self.assertEqual(len(keys), 4)

    def test_record_key_format(self):
        descriptor = RequestDescriptor(collection_id="ns/City", record_id="london")

        self.assertEqual(derive_key(KeyTag.RECORD, descriptor), "record:ns/City/london")
        self.assertEqual(record_key("ns/City", "london"), "record:ns/City/london")

    def test_record_tag_requires_record_id(self):
        with self.assertRaises(RecordStoreError) as ctx:
            derive_key(KeyTag.RECORD, RequestDescriptor(collection_id="c"))
        self.assertEqual(ctx.exception.reason, "request/invalid-descriptor")

    def test_query_tag_rejects_record_descriptor(self):
        with self.assertRaises(RecordStoreError):
            derive_key(KeyTag.QUERY, RequestDescriptor(collection_id="c", record_id="r"))

    def test_collection_tag_rejects_parameters(self):
        plain = RequestDescriptor(collection_id="users")
        limited = RequestDescriptor(collection_id="users", limit=5)

        self.assertEqual(derive_key(KeyTag.COLLECTION, plain), "collection:users")
        with self.assertRaises(RecordStoreError) as ctx:
            derive_key(KeyTag.COLLECTION, limited)
        self.assertEqual(ctx.exception.reason, "request/invalid-descriptor")
        self.assertNotEqual(derive_key(KeyTag.QUERY, limited), derive_key(KeyTag.COLLECTION, plain))

    def test_write_descriptors_have_no_key(self):
        descriptor = RequestDescriptor(collection_id="c", method=HttpMethod.POST, body={"args": []})

        with self.assertRaises(RecordStoreError):
            derive_key(KeyTag.COLLECTION, descriptor)

    def test_unknown_tag_raises(self):
        with self.assertRaises(ValueError):
            derive_key("doc", RequestDescriptor(collection_id="c"))

    def test_canonical_params_omits_absent_parameters(self):
        self.assertEqual(canonical_params(RequestDescriptor(collection_id="c")), "{}")


class TestDescriptorConstruction(unittest.TestCase):
    def test_unknown_operator_is_rejected(self):
        with self.assertRaises(RecordStoreError) as ctx:
            WhereClause("age", "~=", 1)
        self.assertEqual(ctx.exception.reason, "request/invalid-descriptor")

    def test_non_basic_values_are_rejected(self):
        with self.assertRaises(RecordStoreError):
            WhereClause("tags", "==", ["a"])
        with self.assertRaises(RecordStoreError):
            WhereClause("score", ">", float("nan"))

    def test_bad_sort_direction_is_rejected(self):
        with self.assertRaises(RecordStoreError):
            SortClause("name", "up")

    def test_limit_must_be_positive_int(self):
        for limit in (0, -1, True, 1.5):
            with self.subTest(limit=limit):
                with self.assertRaises(RecordStoreError):
                    RequestDescriptor(collection_id="c", limit=limit)

    def test_record_path_is_url_encoded(self):
        descriptor = RequestDescriptor(collection_id="ns/City", record_id="a b", call="rename")

        self.assertEqual(descriptor.path, "/collections/ns%2FCity/records/a%20b/call/rename")

    def test_wire_params_merge_range_filters_on_one_field(self):
        descriptor = _users(("age", ">", 18), ("age", "<=", 65), ("city", "==", "NYC"))

        self.assertEqual(
            descriptor.wire_params(),
            {"where": {"age": {"$gt": 18, "$lte": 65}, "city": "NYC"}},
        )

    def test_conflicting_filters_on_one_field_are_rejected(self):
        cases = {
            "equality then range": (("age", "==", 30), ("age", ">", 18)),
            "range then equality": (("age", ">", 18), ("age", "==", 30)),
            "two equalities": (("age", "==", 30), ("age", "==", 31)),
            "repeated range": (("age", ">", 18), ("age", ">", 21)),
        }
        for label, clauses in cases.items():
            with self.subTest(label):
                with self.assertRaises(RecordStoreError) as ctx:
                    _users(*clauses)
                self.assertEqual(ctx.exception.reason, "request/invalid-descriptor")


class TestQueryBuilderKeys(unittest.TestCase):
    def setUp(self):
        self.client = Client(ClientSettings(), transport=NullTransport())
        self.users = self.client.collection("users")

    def test_builders_return_new_queries(self):
        adults = self.users.where("age", ">", 18)
        key_before = adults.key()

        adults_in_nyc = adults.where("city", "==", "NYC")

        self.assertEqual(adults.key(), key_before)
        self.assertNotEqual(adults_in_nyc.key(), key_before)

    def test_equivalent_builder_chains_share_a_key(self):
        first = self.users.where("age", ">", 18).sort("name").limit(20)
        second = self.client.collection("users").where("age", ">", 18).sort("name", "asc").limit(20)

        self.assertEqual(first.key(), second.key())

    def test_collection_key_matches_unfiltered_query(self):
        self.assertEqual(self.users.key(), "collection:users")
        self.assertEqual(self.users._create_query().key(), self.users.key())

    def test_after_replaces_before_cursor(self):
        query = self.users.before("c1").after("c2")

        self.assertIsNone(query.request().before)
        self.assertEqual(query.request().after, "c2")

    def test_invalid_builder_arguments_raise_synchronously(self):
        with self.assertRaises(RecordStoreError):
            self.users.where("age", "between", 1)
        with self.assertRaises(RecordStoreError):
            self.users.limit(0)
        with self.assertRaises(RecordStoreError):
            self.users.where("age", ">", 18).where("age", "==", 30)

    def test_record_handle_key(self):
        self.assertEqual(self.users.record("alice").key(), "record:users/alice")


if __name__ == "__main__":
    unittest.main()
