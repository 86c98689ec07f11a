"""Pytest configuration and fixtures."""

import json

import pytest

from reconcile.config import ReconcileSettings


@pytest.fixture
def settings():
    """Settings isolated from the environment."""
    return ReconcileSettings(_env_file=None)


@pytest.fixture
def sample_manifest():
    """Destination composer.json content for testing."""
    return {
        "name": "pantheon-systems/example-drops-9",
        "type": "project",
        "repositories": [
            {"type": "composer", "url": "https://packages.drupal.org/8"},
        ],
        "require": {
            "drupal/core-recommended": "^9.0",
            "drush/drush": "^10.3",
        },
        "minimum-stability": "dev",
        "extra": {
            "installer-paths": {
                "web/core": ["type:drupal-core"],
                "web/modules/contrib/{$name}": ["type:drupal-module"],
            },
        },
        "config": {"optimize-autoloader": True, "sort-packages": True},
    }


@pytest.fixture
def sample_source_manifest():
    """Source composer.json with a keyed package repository."""
    return {
        "name": "example/legacy-site",
        "repositories": {
            "drupal": {"type": "composer", "url": "https://packages.drupal.org/8"},
            "chosen": {
                "type": "package",
                "package": {"name": "harvesthq/chosen", "version": "1.8.7", "type": "drupal-library"},
            },
        },
        "require": {"drupal/core": "^8.9"},
    }


@pytest.fixture
def manifest_file(tmp_path, sample_manifest):
    """Write the destination manifest to a temporary composer.json."""
    path = tmp_path / "composer.json"
    path.write_text(json.dumps(sample_manifest, indent=4) + "\n")
    return path
