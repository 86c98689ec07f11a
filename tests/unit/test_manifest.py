"""Tests for manifest loading, merging and persistence."""

import json
from datetime import datetime

import pytest

from reconcile.config import ReconcileSettings
from reconcile.diff import diff_manifests
from reconcile.errors import ComparisonError, ManifestIOError, ParseError, ValidationError
from reconcile.manifest import ManifestReconciler, load_manifest


class TestLoad:
    """Test loading manifests from disk and memory."""

    def test_load_file(self, manifest_file, sample_manifest):
        document = load_manifest(manifest_file)
        assert list(document.requirements) == ["drupal/core-recommended", "drush/drush"]
        assert document.requirements["drush/drush"].version == "^10.3"
        assert document.repositories == sample_manifest["repositories"]
        assert document.extra == sample_manifest["extra"]
        assert document.original == sample_manifest
        assert document.path == manifest_file

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestIOError) as exc_info:
            load_manifest(tmp_path / "missing.json")
        assert "missing.json" in str(exc_info.value)
        assert isinstance(exc_info.value, OSError)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "composer.json"
        path.write_text('{"require": {')
        with pytest.raises(ParseError):
            load_manifest(path)

    @pytest.mark.parametrize("content", [
        "[1, 2]",
        '{"require": "drupal/core"}',
        '{"require": {"drupal/core": 9}}',
        '{"extra": "nope"}',
        '{"repositories": "https://example.com"}',
    ])
    def test_rejects_wrong_shapes(self, content):
        with pytest.raises(ParseError):
            ManifestReconciler.from_text(content)

    def test_empty_php_arrays_are_empty_objects(self, settings):
        reconciler = ManifestReconciler.from_text('{"require": [], "extra": []}', settings)
        assert reconciler.requirements == {}
        assert reconciler.get_extra_property("installer-types") is None
        assert json.loads(reconciler.to_json()) == {"require": [], "extra": []}

    def test_seeded_versions_are_not_validated(self, settings):
        """A manifest may pin branches the comparator cannot order."""
        reconciler = ManifestReconciler.from_data({"require": {"drupal/devel": "dev-master"}}, settings)
        assert reconciler.requirements["drupal/devel"].version == "dev-master"


class TestAddRequirement:
    """Test merging discovered requirements."""

    def setup_method(self):
        self.reconciler = ManifestReconciler.from_data({"require": {"drupal/core": "^9.0"}})

    def test_adds_new(self):
        req = self.reconciler.add_requirement("drupal/token", "^1.9")
        assert req.version == "^1.9"
        assert list(self.reconciler.requirements) == ["drupal/core", "drupal/token"]

    def test_ratchet_keeps_maximum(self):
        for version in ["^8.3", "^8.1", "^8.5"]:
            self.reconciler.add_requirement("drupal/pathauto", version)
        assert self.reconciler.requirements["drupal/pathauto"].version == "^8.5"

    def test_does_not_regress_existing(self):
        self.reconciler.add_requirement("drupal/core", "^8.9")
        assert self.reconciler.requirements["drupal/core"].version == "^9.0"
        assert not self.reconciler.get_diff()

    def test_tie_produces_no_diff(self):
        self.reconciler.add_requirement("drupal/token", "1.2.0")
        first = self.reconciler.get_diff()
        self.reconciler.add_requirement("drupal/token", "1.2.0")
        assert self.reconciler.requirements["drupal/token"].version == "1.2.0"
        assert self.reconciler.get_diff() == first
        assert len(first) == 1

    def test_rejects_empty_name(self):
        with pytest.raises(ValidationError):
            self.reconciler.add_requirement("", "1.0.0")
        assert list(self.reconciler.requirements) == ["drupal/core"]

    def test_rejects_unparseable_new_version(self):
        with pytest.raises(ComparisonError):
            self.reconciler.add_requirement("drupal/token", "dev-master")
        assert "drupal/token" not in self.reconciler.requirements

    def test_branch_alias_versions(self):
        reconciler = ManifestReconciler.from_data({"require": {"drupal/foo": "1.x-dev"}})
        reconciler.add_requirement("drupal/foo", "2.x-dev")
        reconciler.add_requirement("drupal/bar", "8.x-1.x-dev")
        assert reconciler.requirements["drupal/foo"].version == "2.x-dev"
        assert reconciler.requirements["drupal/bar"].version == "8.x-1.x-dev"

    def test_rejects_non_string_version(self):
        with pytest.raises(ComparisonError):
            self.reconciler.add_requirement("drupal/token", ["1.0"])
        assert "drupal/token" not in self.reconciler.requirements

    def test_rejected_version_leaves_existing_untouched(self):
        with pytest.raises(ComparisonError):
            self.reconciler.add_requirement("drupal/core", "latest")
        assert self.reconciler.requirements["drupal/core"].version == "^9.0"


class TestRepositories:
    """Test wholesale repository replacement."""

    def test_replaces_and_dedupes(self):
        reconciler = ManifestReconciler.from_data({"repositories": [{"type": "vcs", "url": "a"}]})
        composer = {"type": "composer", "url": "https://packages.drupal.org/8"}
        reconciler.set_repositories([composer, {"url": "https://packages.drupal.org/8", "type": "composer"}])
        assert reconciler.document.repositories == [composer]

    def test_keyed_repositories(self, sample_source_manifest):
        reconciler = ManifestReconciler.from_data({})
        reconciler.set_repositories(sample_source_manifest["repositories"])
        assert reconciler.snapshot()["repositories"] == sample_source_manifest["repositories"]

    def test_rejects_other_types(self):
        reconciler = ManifestReconciler.from_data({})
        with pytest.raises(ValidationError):
            reconciler.set_repositories("https://packages.drupal.org/8")


class TestExtra:
    """Test extra metadata reads, writes and list merges."""

    def setup_method(self):
        self.reconciler = ManifestReconciler.from_data({
            "extra": {
                "installer-types": ["type:npm-asset", "type:bower-asset"],
                "installer-paths": {"web/core": ["type:drupal-core"]},
                "patchLevel": {"drupal/core": "-p2"},
            }
        })

    def test_get_nested(self):
        assert self.reconciler.get_extra_property("installer-paths", "web/core") == ["type:drupal-core"]
        assert self.reconciler.get_extra_property("installer-paths", "web/libraries/{$name}") is None
        assert self.reconciler.get_extra_property("missing", default=[]) == []

    def test_get_returns_copy(self):
        paths = self.reconciler.get_extra_property("installer-paths")
        paths["web/core"].append("type:other")
        assert self.reconciler.get_extra_property("installer-paths", "web/core") == ["type:drupal-core"]

    def test_set_overwrites(self):
        self.reconciler.set_extra_property("patchLevel", {"drupal/core": "-p1"})
        assert self.reconciler.get_extra_property("patchLevel", "drupal/core") == "-p1"

    def test_set_rejects_non_json(self):
        with pytest.raises(ValidationError):
            self.reconciler.set_extra_property("bad", {1, 2})

    def test_union_dedup(self):
        merged = self.reconciler.merge_extra_list("installer-types", ["type:npm-asset"])
        assert merged == ["type:npm-asset", "type:bower-asset"]

    def test_union_appends_new_in_order(self):
        merged = self.reconciler.merge_extra_list("installer-types", ["library", "type:npm-asset", "library"])
        assert merged == ["type:npm-asset", "type:bower-asset", "library"]

    def test_merge_into_absent_key(self):
        assert self.reconciler.merge_extra_list("new-list", ["a", "a", "b"]) == ["a", "b"]

    def test_merge_nested(self):
        merged = self.reconciler.merge_extra_list(
            "installer-paths", ["type:npm-asset", "type:bower-asset"], subkey="web/libraries/{$name}"
        )
        assert merged == ["type:npm-asset", "type:bower-asset"]
        paths = self.reconciler.get_extra_property("installer-paths")
        assert list(paths) == ["web/core", "web/libraries/{$name}"]

    def test_merge_rejects_non_list(self):
        with pytest.raises(ValidationError):
            self.reconciler.merge_extra_list("patchLevel", ["x"])

    def test_merge_rejects_non_mapping_container(self):
        with pytest.raises(ValidationError):
            self.reconciler.merge_extra_list("installer-types", ["x"], subkey="web/core")


class TestDiff:
    """Test diffs against the loaded original."""

    def test_scalar_type_change_in_extra(self):
        reconciler = ManifestReconciler.from_data({"extra": {"flag": 1, "n": 0}})
        reconciler.set_extra_property("flag", True)
        reconciler.set_extra_property("n", False)
        diff = reconciler.get_diff().to_dict()
        assert diff["extra"]["changed"] == {
            "flag": {"from": 1, "to": True},
            "n": {"from": 0, "to": False},
        }

    def test_single_addition(self):
        reconciler = ManifestReconciler.from_data({"require": {"drupal/core": "^9.0"}})
        reconciler.add_requirement("drupal/views_bulk_operations", "^4.0")
        diff = reconciler.get_diff()
        assert len(diff) == 1
        assert diff.to_dict() == {"require": {"added": {"drupal/views_bulk_operations": "^4.0"}}}

    def test_version_change_and_extra(self):
        reconciler = ManifestReconciler.from_data({"require": {"drupal/token": "^1.5"}})
        reconciler.add_requirement("drupal/token", "^1.9")
        reconciler.merge_extra_list("installer-types", ["npm-asset"])
        diff = reconciler.get_diff().to_dict()
        assert diff["require"] == {"changed": {"drupal/token": {"from": "^1.5", "to": "^1.9"}}}
        assert diff["extra"] == {"added": {"installer-types": ["npm-asset"]}}

    def test_original_is_never_mutated(self, sample_manifest):
        reconciler = ManifestReconciler.from_data(sample_manifest)
        reconciler.add_requirement("drupal/token", "^1.9")
        reconciler.merge_extra_list("installer-paths", ["type:npm-asset"], subkey="web/core")
        reconciler.set_repositories([])
        assert reconciler.original == sample_manifest
        reconciler.original["require"].clear()
        assert reconciler.document.original == sample_manifest

    def test_diff_is_repeatable(self):
        reconciler = ManifestReconciler.from_data({})
        reconciler.add_requirement("drupal/token", "^1.9")
        assert reconciler.get_diff() == reconciler.get_diff()
        reconciler.add_requirement("drupal/ctools", "^3.7")
        assert len(reconciler.get_diff()) == 2


class TestPersistence:
    """Test serialization, backup and write."""

    def test_key_order_preserved(self, manifest_file, sample_manifest, settings):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        reconciler.add_requirement("drupal/token", "^1.9")
        data = json.loads(reconciler.to_json())
        assert list(data) == list(sample_manifest)
        assert list(data["require"]) == ["drupal/core-recommended", "drush/drush", "drupal/token"]

    def test_new_sections_appended(self, settings):
        reconciler = ManifestReconciler.from_data({"name": "x/y"}, settings)
        assert list(reconciler.snapshot()) == ["name"]
        reconciler.add_requirement("drupal/token", "^1.9")
        assert list(reconciler.snapshot()) == ["name", "require"]

    def test_round_trip(self, manifest_file, settings):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        reconciler.add_requirement("drupal/token", "^1.9")
        reconciler.merge_extra_list("installer-types", ["npm-asset", "library"])
        reconciler.write()

        reloaded = ManifestReconciler.load(manifest_file, settings)
        assert reloaded.requirements == reconciler.requirements
        assert reloaded.document.extra == reconciler.document.extra
        assert not diff_manifests(reloaded.snapshot(), reconciler.snapshot())

    def test_unknown_fields_preserved(self, manifest_file, sample_manifest, settings):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        reconciler.add_requirement("drupal/token", "^1.9")
        reconciler.write()

        written = json.loads(manifest_file.read_text())
        for key in ("name", "type", "minimum-stability", "config"):
            assert json.dumps(written[key]) == json.dumps(sample_manifest[key])

    def test_write_format(self, manifest_file, settings):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        reconciler.write()
        content = manifest_file.read_text()
        assert content.endswith("}\n")
        assert '\n    "name": ' in content
        assert "web/modules/contrib/{$name}" in content

    def test_write_without_path(self, settings):
        reconciler = ManifestReconciler.from_data({}, settings)
        with pytest.raises(ManifestIOError):
            reconciler.write()
        with pytest.raises(ManifestIOError):
            reconciler.backup_file()

    def test_unencodable_content(self, tmp_path, settings):
        """A lone surrogate loads as valid JSON but cannot be written as UTF-8."""
        path = tmp_path / "composer.json"
        path.write_text('{"description": "x\\ud800"}')
        before = path.read_text()
        reconciler = ManifestReconciler.load(path, settings)
        reconciler.add_requirement("drupal/token", "^1.9")

        with pytest.raises(ManifestIOError):
            reconciler.write()
        assert path.read_text() == before
        assert sorted(p.name for p in tmp_path.iterdir()) == ["composer.json"]

    def test_failed_write_keeps_original(self, manifest_file, settings, monkeypatch):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        reconciler.add_requirement("drupal/token", "^1.9")
        before = manifest_file.read_text()

        def fail(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("reconcile.manifest.os.replace", fail)
        with pytest.raises(ManifestIOError):
            reconciler.write()
        assert manifest_file.read_text() == before
        assert sorted(p.name for p in manifest_file.parent.iterdir()) == ["composer.json"]

    def test_backup(self, manifest_file, settings):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        before = manifest_file.read_text()
        reconciler.add_requirement("drupal/token", "^1.9")

        backup = reconciler.backup_file(now=datetime(2024, 1, 2, 3, 4, 5))
        assert backup.name == "backup-20240102030405-composer.json"
        assert backup.parent == manifest_file.parent
        assert backup.read_text() == before
        assert manifest_file.read_text() == before

        reconciler.write()
        assert backup.read_text() == before
        assert "drupal/token" in manifest_file.read_text()

    def test_backup_never_overwrites(self, manifest_file, settings):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        now = datetime(2024, 1, 2, 3, 4, 5)
        first = reconciler.backup_file(now=now)
        second = reconciler.backup_file(now=now)
        assert first != second
        assert second.name == "backup-20240102030405-1-composer.json"

    def test_backup_of_deleted_file(self, manifest_file, settings):
        reconciler = ManifestReconciler.load(manifest_file, settings)
        manifest_file.unlink()
        with pytest.raises(ManifestIOError):
            reconciler.backup_file()

    def test_indent_setting(self, manifest_file):
        reconciler = ManifestReconciler.load(manifest_file, ReconcileSettings(_env_file=None, json_indent=2))
        assert '\n  "name": ' in reconciler.to_json()
