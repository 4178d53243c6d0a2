import json

import pytest

from workerdb.core.manifest import (
    DEFAULT_MANIFEST_PATH,
    ForeignKeyScope,
    ManifestError,
    TagMatch,
    load_manifest,
    manifest_from_dict,
)


def test_packaged_manifest_tracks_expected_tables_in_dependency_order():
    manifest = load_manifest()

    assert manifest.version == 1
    assert manifest.canonical_schema == "public"
    assert manifest.table_names == [
        "profiles",
        "accounts",
        "projects",
        "expenses",
        "credit_cards",
        "user_preferences",
    ]
    assert [t.name for t in manifest.deletion_order()][0] == "user_preferences"


def test_packaged_manifest_foreign_keys():
    tables = {t.name: t for t in load_manifest().tables}

    assert tables["accounts"].local_parents == ("profiles",)
    assert tables["credit_cards"].local_parents == ("profiles",)
    prefs_fk = tables["user_preferences"].foreign_keys[0]
    assert prefs_fk.scope is ForeignKeyScope.SHARED
    assert prefs_fk.references_table == "auth.users"
    assert prefs_fk.on_delete == "CASCADE"
    assert tables["user_preferences"].local_parents == ()


def test_packaged_manifest_tag_columns():
    tables = {t.name: t for t in load_manifest().tables}

    assert tables["profiles"].tag_match is TagMatch.EMAIL
    assert tables["accounts"].tag_column == "name"
    assert tables["accounts"].tag_match is TagMatch.PREFIX


def test_manifest_defaults():
    manifest = manifest_from_dict({"version": 2, "tables": [{"name": "t"}]})

    assert manifest.canonical_schema == "public"
    assert manifest.tables[0].foreign_keys == ()
    assert manifest.tables[0].tag_column is None


def test_foreign_key_defaults_and_case_normalization():
    manifest = manifest_from_dict(
        {
            "version": 1,
            "tables": [
                {"name": "parent"},
                {
                    "name": "child",
                    "foreign_keys": [
                        {"column": "parent_id", "references_table": "parent", "on_delete": "cascade"}
                    ],
                },
            ],
        }
    )

    fk = manifest.tables[1].foreign_keys[0]
    assert fk.references_column == "id"
    assert fk.on_delete == "CASCADE"
    assert fk.scope is ForeignKeyScope.LOCAL


@pytest.mark.parametrize(
    "payload,match",
    [
        ({"tables": []}, "version"),
        ({"version": 1, "tables": []}, "at least one"),
        ({"version": 1, "tables": [{"name": "a"}, {"name": "a"}]}, "twice"),
        ({"version": 1, "tables": [{"name": "bad-name"}]}, "identifier"),
        ({"version": 1, "tables": [{"name": "Accounts"}]}, "lowercase"),
        ({"version": 1, "tables": [{"name": "notes", "tag_column": "Title"}]}, "lowercase"),
        ({"version": 1, "tables": [{}]}, "name"),
        ({"version": 1, "canonical_schema": "x y", "tables": [{"name": "a"}]}, "identifier"),
        (
            {
                "version": 1,
                "tables": [
                    {"name": "child", "foreign_keys": [{"column": "p", "references_table": "parent"}]},
                    {"name": "parent"},
                ],
            },
            "declared before",
        ),
        (
            {
                "version": 1,
                "tables": [
                    {
                        "name": "a",
                        "foreign_keys": [
                            {"column": "u", "references_table": "users", "scope": "shared"}
                        ],
                    }
                ],
            },
            "schema-qualified",
        ),
        (
            {
                "version": 1,
                "tables": [
                    {
                        "name": "a",
                        "foreign_keys": [
                            {"column": "u", "references_table": "auth.users", "scope": "local"}
                        ],
                    }
                ],
            },
            "local foreign keys",
        ),
        (
            {
                "version": 1,
                "tables": [
                    {"name": "p"},
                    {
                        "name": "a",
                        "foreign_keys": [
                            {"column": "p_id", "references_table": "p", "on_delete": "EXPLODE"}
                        ],
                    },
                ],
            },
            "on_delete",
        ),
        (
            {
                "version": 1,
                "tables": [{"name": "a", "foreign_keys": [{"column": "p", "references_table": "p", "scope": "remote"}]}],
            },
            "scope",
        ),
        ({"version": 1, "tables": [{"name": "a", "foreign_keys": [{"column": "p"}]}]}, "missing field"),
        ({"version": 1, "tables": [{"name": "a", "tag_match": "regex"}]}, "tag_match"),
    ],
)
def test_invalid_manifests_are_rejected(payload, match):
    with pytest.raises(ManifestError, match=match):
        manifest_from_dict(payload)


def test_load_manifest_reports_missing_file(tmp_path):
    with pytest.raises(ManifestError, match="Cannot read"):
        load_manifest(tmp_path / "nope.json")


def test_load_manifest_reports_bad_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ManifestError, match="not valid JSON"):
        load_manifest(path)


def test_packaged_manifest_file_is_plain_json():
    payload = json.loads(DEFAULT_MANIFEST_PATH.read_text(encoding="utf-8"))

    assert payload["version"] == 1
