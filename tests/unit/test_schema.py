"""Tests for the code-first collection definitions and schema diffing."""

import pytest

from taskmirror.core.schema import COLLECTIONS, _get_collection_schema, diff_collection


def _field(schema, name):
    return next(field for field in schema["fields"] if field["name"] == name)


@pytest.mark.unit
class TestCollectionSchemas:
    @pytest.mark.parametrize("collection_name", COLLECTIONS)
    def test_every_collection_is_defined(self, collection_name):
        schema = _get_collection_schema(collection_name=collection_name)

        assert schema["name"] == collection_name
        assert schema["fields"]

    def test_relations_only_point_at_earlier_collections(self):
        for position, collection_name in enumerate(COLLECTIONS):
            schema = _get_collection_schema(collection_name=collection_name)
            for field in schema["fields"]:
                if field["type"] == "relation":
                    assert COLLECTIONS.index(field["collectionId"]) < position, (collection_name, field["name"])

    def test_relations_use_known_collection_ids(self):
        schema = _get_collection_schema(collection_name="tasks", collection_ids={"users": "pbc_users"})

        assert _field(schema, "user_id")["collectionId"] == "pbc_users"

    def test_one_redemption_per_user_and_code(self):
        schema = _get_collection_schema(collection_name="user_coupons")

        assert any(
            "UNIQUE" in index and "(user_id, coupon_code)" in index for index in schema["indexes"]
        )

    def test_plan_status_values(self):
        schema = _get_collection_schema(collection_name="profiles")

        assert _field(schema, "plan_status")["values"] == ["trial", "basic", "pro", "enterprise"]


@pytest.mark.unit
class TestDiffCollection:
    def _current(self, schema):
        return {**schema, "id": "pbc_1", "fields": [dict(field, id=f"f_{field['name']}") for field in schema["fields"]]}

    def test_up_to_date_collection_needs_nothing(self):
        schema = _get_collection_schema(collection_name="goals")

        assert diff_collection(schema, self._current(schema)) is None

    def test_missing_field_is_added_and_extra_fields_kept(self):
        schema = _get_collection_schema(collection_name="goals")
        current = self._current(schema)
        current["fields"] = [field for field in current["fields"] if field["name"] != "task_ids"]
        current["fields"].append({"name": "legacy", "type": "text"})

        payload = diff_collection(schema, current)

        names = [field["name"] for field in payload["fields"]]
        assert "task_ids" in names
        assert "legacy" in names

    def test_changed_rule_is_patched(self):
        schema = _get_collection_schema(collection_name="goals")
        current = self._current(schema)
        current["deleteRule"] = None

        payload = diff_collection(schema, current)

        assert payload["deleteRule"] == schema["deleteRule"]

    def test_missing_index_is_appended(self):
        schema = _get_collection_schema(collection_name="user_coupons")
        current = self._current(schema)
        current["indexes"] = ["CREATE INDEX idx_custom ON user_coupons (created_at)"]

        payload = diff_collection(schema, current)

        assert payload["indexes"][0] == "CREATE INDEX idx_custom ON user_coupons (created_at)"
        assert set(schema["indexes"]) <= set(payload["indexes"])
