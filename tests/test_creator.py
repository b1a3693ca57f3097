"""Tests for composing definitions and differential builds."""

import pytest

from airlift.creator import compose_components, load_differential_data, remove_copies_from_components
from airlift.errors import ImportChainError, ValidationError
from airlift.schemas import Component, DifferentialData, PackageDefinition, Variable


def app_definition(components, variables=None):
    return PackageDefinition.from_dict({
        "kind": "AirliftPackageConfig",
        "metadata": {"name": "app", "version": "1.0.0", "architecture": "amd64"},
        "components": components,
        "variables": variables or [],
    })


@pytest.fixture
def base_package(tmp_path, write_definition):
    write_definition(tmp_path / "base", {
        "kind": "AirliftPackageConfig",
        "metadata": {"name": "base"},
        "components": [
            {"name": "web", "files": [{"source": "index.html", "target": "/srv/index.html"}]},
        ],
        "variables": [{"name": "BASE_VAR", "default": "base"}, {"name": "SHARED", "default": "base"}],
        "constants": [{"name": "REGION", "value": "us-east"}],
    })
    return tmp_path


class TestComposeComponents:
    """Tests for compose_components."""

    def test_composes_local_imports(self, base_package, test_config):
        pkg = app_definition(
            [{"name": "web", "import": {"path": "base"}}],
            variables=[{"name": "SHARED", "default": "app"}],
        )

        composed, warnings = compose_components(pkg, config=test_config, working_dir=base_package)

        assert warnings == []
        assert [c.name for c in composed.components] == ["web"]
        assert composed.components[0].files[0].source == "base/index.html"
        assert composed.variables == [
            Variable(name="SHARED", default="app"),
            Variable(name="BASE_VAR", default="base"),
        ]
        assert [c.name for c in composed.constants] == ["REGION"]

    def test_skips_incompatible_components(self, base_package, test_config):
        pkg = app_definition([
            {"name": "amd", "only": {"cluster": {"architecture": "amd64"}, "flavor": "upstream"}},
            {"name": "arm", "only": {"cluster": {"architecture": "arm64"}}},
            {"name": "other-flavor", "only": {"flavor": "registry1"}},
            {"name": "plain"},
        ])

        composed, _ = compose_components(pkg, flavor="upstream", config=test_config, working_dir=base_package)

        assert [c.name for c in composed.components] == ["amd", "plain"]
        selected = composed.components[0]
        assert selected.only.cluster.architecture == ""
        assert selected.only.flavor == ""

    def test_does_not_modify_input(self, base_package, test_config):
        pkg = app_definition([{"name": "web", "import": {"path": "base"}, "only": {"cluster": {"architecture": "amd64"}}}])

        compose_components(pkg, config=test_config, working_dir=base_package)

        assert pkg.components[0].only.cluster.architecture == "amd64"
        assert pkg.components[0].files == []

    def test_collects_migration_warnings(self, base_package, test_config):
        pkg = app_definition([{"name": "legacy", "scripts": {"before": ["./pre.sh"]}}])

        composed, warnings = compose_components(pkg, config=test_config, working_dir=base_package)

        assert warnings
        assert [a.cmd for a in composed.components[0].actions.on_deploy.before] == ["./pre.sh"]

    def test_chain_errors_propagate(self, base_package, test_config):
        pkg = app_definition([{"name": "missing", "import": {"path": "base"}}])
        with pytest.raises(ImportChainError, match="'missing' not found in 'base'"):
            compose_components(pkg, config=test_config, working_dir=base_package)


class TestRemoveCopiesFromComponents:
    """Tests for differential filtering."""

    REPO = "https://github.com/acme/app.git"

    def diff(self):
        return DifferentialData(
            images={"nginx:1.25", "nginx:latest", "ghcr.io/acme/api@sha256:" + "a" * 64},
            repos={
                f"{self.REPO}@v1.0.0",
                f"{self.REPO}@{'b' * 40}",
                f"{self.REPO}@refs/heads/main",
                self.REPO,
            },
            package_version="0.9.0",
        )

    def test_removes_pinned_images(self):
        component = Component(
            name="web",
            images=["nginx:1.25", "nginx:1.26", "ghcr.io/acme/api@sha256:" + "a" * 64],
        )

        [result] = remove_copies_from_components([component], self.diff())

        assert result.images == ["nginx:1.26"]

    def test_keeps_floating_tags(self):
        component = Component(name="web", images=["nginx:latest"])
        [result] = remove_copies_from_components([component], self.diff())
        assert result.images == ["nginx:latest"]

    def test_removes_tag_and_commit_pinned_repos(self):
        component = Component(name="web", repos=[
            f"{self.REPO}@v1.0.0",
            f"{self.REPO}@{'b' * 40}",
            f"{self.REPO}@v2.0.0",
        ])

        [result] = remove_copies_from_components([component], self.diff())

        assert result.repos == [f"{self.REPO}@v2.0.0"]

    def test_keeps_branches_and_unpinned_repos(self):
        component = Component(name="web", repos=[f"{self.REPO}@refs/heads/main", self.REPO])
        [result] = remove_copies_from_components([component], self.diff())
        assert result.repos == [f"{self.REPO}@refs/heads/main", self.REPO]

    def test_does_not_modify_input(self):
        component = Component(name="web", images=["nginx:1.25"])
        remove_copies_from_components([component], self.diff())
        assert component.images == ["nginx:1.25"]

    def test_invalid_repo(self):
        component = Component(name="web", repos=["not a git url"])
        with pytest.raises(ValidationError):
            remove_copies_from_components([component], self.diff())


def test_load_differential_data(tmp_path, package_builder, definition_factory, test_config):
    pkg = definition_factory(version="0.9.0", components=[
        {"name": "web", "images": ["nginx:1.25"], "repos": ["https://github.com/acme/app.git@v1.0.0"]},
        {"name": "api", "images": ["ghcr.io/acme/api:2.0", "nginx:1.25"]},
    ])
    layout = package_builder(tmp_path / "reference", pkg=pkg, contents={})
    [tarball] = layout.archive_package(tmp_path / "airlift-package-app-amd64-0.9.0.tar.zst")

    diff = load_differential_data(str(tarball), test_config)

    assert diff.package_version == "0.9.0"
    assert diff.images == {"nginx:1.25", "ghcr.io/acme/api:2.0"}
    assert diff.repos == {"https://github.com/acme/app.git@v1.0.0"}
