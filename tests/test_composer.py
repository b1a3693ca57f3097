"""Tests for import chain resolution and composition."""

from pathlib import Path

import pytest
import yaml

from airlift.composer import (
    ImportChain,
    compatible_component,
    make_path_relative_to,
    new_import_chain,
    validate_import,
)
from airlift.errors import (
    AmbiguousComponentError,
    CircularImportError,
    ComponentNotFoundError,
    ImportChainError,
    LocalOSRedefinitionError,
    MissingArchitectureError,
    RemoteImportError,
    SourceError,
    ValidationError,
)
from airlift.oci.package import PackageRemote
from airlift.schemas import BuildData, Component, Constant, Variable
from airlift.utils import create_reproducible_tarball


SKELETON_URL = "oci://registry.example.com/acme/base:1.0.0-skeleton"


def dummy_component(name, import_dir, sub_name):
    return Component.from_dict({
        "name": f"import-{name}",
        "import": {"path": import_dir},
        "files": [{"source": f"{name}.txt"}],
        "charts": [{"name": sub_name, "localPath": "chart", "valuesFiles": ["values.yaml"]}],
        "manifests": [{"name": sub_name, "files": ["manifest.yaml"]}],
        "dataInjections": [{"source": name}],
        "actions": {
            stage: {
                "defaults": {"dir": f"{name}-d{suffix}"},
                "before": [{"cmd": f"{name}-b{suffix}"}],
                "after": [{"cmd": f"{name}-a{suffix}"}],
                "onSuccess": [{"cmd": f"{name}-s{suffix}"}],
                "onFailure": [{"cmd": f"{name}-f{suffix}"}],
            }
            for stage, suffix in (("onCreate", "c"), ("onDeploy", "d"), ("onRemove", "r"))
        },
        "extensions": {"bigbang": {"valuesFiles": ["values.yaml"], "fluxPatchFiles": ["patch.yaml"]}},
    })


def chain_from_components(components):
    chain = ImportChain()
    chain.append(components[0], 0, "test-package", ".")
    history = []
    for index in range(1, len(components)):
        history.append(components[index - 1].import_.path)
        chain.append(components[index], index, "test-package", "/".join(history))
    return chain


class TestValidateImport:
    """Tests for import reference validation."""

    @pytest.mark.parametrize("ref,reason", [
        ({}, "neither a path nor a URL"),
        ({"path": "a", "url": SKELETON_URL}, "both a path and a URL"),
        ({"path": "/abs/path"}, "absolute path"),
        ({"url": "https://example.com/pkg-skeleton"}, "not a valid OCI URL"),
        ({"url": "oci://registry.example.com/acme/base:1.0.0"}, "must end with -skeleton"),
    ])
    def test_rejects(self, ref, reason):
        component = Component.from_dict({"name": "web", "import": ref})
        with pytest.raises(ValidationError, match=reason):
            validate_import(component)

    @pytest.mark.parametrize("ref", [{"path": "../base"}, {"url": SKELETON_URL}])
    def test_accepts(self, ref):
        validate_import(Component.from_dict({"name": "web", "import": ref}))


class TestCompatibleComponent:
    """Tests for architecture and flavor selection."""

    def test_empty_selectors_match_everything(self):
        assert compatible_component(Component(name="web"), "arm64", "upstream")

    def test_selectors(self):
        component = Component.from_dict({
            "name": "web",
            "only": {"cluster": {"architecture": "amd64"}, "flavor": "upstream"},
        })
        assert compatible_component(component, "amd64", "upstream")
        assert not compatible_component(component, "arm64", "upstream")
        assert not compatible_component(component, "amd64", "registry1")


class TestNewImportChain:
    """Tests for building chains from local packages."""

    def test_requires_architecture(self):
        with pytest.raises(MissingArchitectureError, match="architecture must be provided") as exc:
            new_import_chain(Component(name="web"), 0, "app", "")
        assert len(exc.value.chain) == 0

    def test_no_import_is_single_node(self):
        chain = new_import_chain(Component(name="web"), 0, "app", "amd64")
        assert len(chain) == 1
        assert chain.head is chain.tail
        assert str(chain) == 'component "web" imports nothing'

    def test_self_import_is_circular(self, tmp_path):
        head = Component.from_dict({"name": "web", "import": {"path": "."}})
        with pytest.raises(CircularImportError, match="detected circular import chain"):
            new_import_chain(head, 0, "app", "amd64", working_dir=tmp_path)

    def test_follows_local_imports(self, tmp_path, write_definition):
        app = tmp_path / "app"
        write_definition(app / "base", {
            "metadata": {"name": "base"},
            "variables": [{"name": "BASE"}],
            "components": [
                {"name": "web", "import": {"path": "../shared", "name": "site"}},
            ],
        })
        write_definition(app / "shared", {
            "metadata": {"name": "shared"},
            "components": [
                {"name": "site", "only": {"cluster": {"architecture": "arm64"}}},
                {"name": "site", "only": {"cluster": {"architecture": "amd64"}}, "images": ["nginx:1.25"]},
            ],
        })
        head = Component.from_dict({"name": "web", "import": {"path": "base"}})

        chain = new_import_chain(head, 2, "app", "amd64", working_dir=app)

        assert [n.relative_to_head for n in chain.nodes] == [".", "base", "shared"]
        assert [n.original_package_name for n in chain.nodes] == ["app", "base", "shared"]
        assert chain.tail.index == 1
        assert chain.tail.component.images == ["nginx:1.25"]
        assert chain.nodes[1].variables == [Variable(name="BASE")]
        assert chain.tail.prev is chain.nodes[1]
        assert chain.head.prev is None
        assert str(chain) == (
            'component "web" imports "web" in base, which imports "site" in ../shared'
        )

    def test_circular_through_parent(self, tmp_path, write_definition):
        write_definition(tmp_path / "base", {
            "metadata": {"name": "base"},
            "components": [{"name": "web", "import": {"path": ".."}}],
        })
        head = Component.from_dict({"name": "web", "import": {"path": "base"}})

        with pytest.raises(CircularImportError) as exc:
            new_import_chain(head, 0, "app", "amd64", working_dir=tmp_path)
        assert exc.value.trail == ["base", ".."]
        assert len(exc.value.chain) == 2

    def test_component_not_found(self, tmp_path, write_definition):
        write_definition(tmp_path / "base", {"metadata": {"name": "base"}, "components": [{"name": "db"}]})
        head = Component.from_dict({"name": "web", "import": {"path": "base"}})
        with pytest.raises(ComponentNotFoundError, match="'web' not found in 'base'"):
            new_import_chain(head, 0, "app", "amd64", working_dir=tmp_path)

    def test_incompatible_flavor_is_not_found(self, tmp_path, write_definition):
        write_definition(tmp_path / "base", {
            "metadata": {"name": "base"},
            "components": [{"name": "web", "only": {"flavor": "registry1"}}],
        })
        head = Component.from_dict({"name": "web", "import": {"path": "base"}})
        with pytest.raises(ComponentNotFoundError):
            new_import_chain(head, 0, "app", "amd64", "upstream", working_dir=tmp_path)

    def test_ambiguous_component(self, tmp_path, write_definition):
        write_definition(tmp_path / "base", {
            "metadata": {"name": "base"},
            "components": [{"name": "web"}, {"name": "web"}],
        })
        head = Component.from_dict({"name": "web", "import": {"path": "base"}})
        with pytest.raises(AmbiguousComponentError, match="multiple components named 'web'"):
            new_import_chain(head, 0, "app", "amd64", working_dir=tmp_path)

    def test_invalid_import_in_imported_package(self, tmp_path, write_definition):
        write_definition(tmp_path / "base", {
            "metadata": {"name": "base"},
            "components": [{"name": "web", "import": {"path": "/etc"}}],
        })
        head = Component.from_dict({"name": "web", "import": {"path": "base"}})
        with pytest.raises(ValidationError, match="absolute path") as exc:
            new_import_chain(head, 0, "app", "amd64", working_dir=tmp_path)
        assert len(exc.value.chain) == 2


def skeleton_remote(tmp_path, remote_from_files, components, files=None):
    definition = yaml.safe_dump({
        "kind": "AirliftPackageConfig",
        "metadata": {"name": "base"},
        "build": {"architecture": "skeleton"},
        "components": components,
        "variables": [{"name": "REMOTE", "default": "r"}],
    }).encode()
    layers = {"airlift.yaml": definition}
    for name, content in (files or {}).items():
        src = tmp_path / "skeleton-src" / name
        for rel, text in content.items():
            (src / rel).parent.mkdir(parents=True, exist_ok=True)
            (src / rel).write_text(text)
        tarball = tmp_path / "skeleton-src" / f"{name}.tar"
        create_reproducible_tarball(src, tarball, prefix=name)
        layers[f"components/{name}.tar"] = tarball
    return remote_from_files(layers, reference="registry.example.com/acme/base:1.0.0-skeleton")


class TestRemoteImports:
    """Tests for chains that reach a published skeleton."""

    def test_remote_tail(self, tmp_path, test_config, remote_from_files):
        remote = skeleton_remote(
            tmp_path, remote_from_files,
            [{"name": "web", "files": [{"source": "files/index.html"}]}],
            files={"web": {"files/index.html": "<h1>hi</h1>"}},
        )
        requested = []

        def factory(url):
            requested.append(url)
            return remote

        app = tmp_path / "app"
        app.mkdir()
        head = Component.from_dict({"name": "web", "import": {"url": SKELETON_URL}})
        chain = new_import_chain(head, 0, "app", "amd64", config=test_config, working_dir=app, remote_factory=factory)

        assert requested == [SKELETON_URL]
        assert chain.contains_oci_import()
        assert chain.tail.relative_to_head == ""
        assert chain.tail.import_location == SKELETON_URL
        assert str(chain) == f'component "web" imports "web" in {SKELETON_URL}'
        assert chain.merge_variables() == [Variable(name="REMOTE", default="r")]

        composed = chain.compose()

        source = composed.files[0].source
        assert source.startswith("../cache/oci/dirs/")
        assert (app / source).read_text() == "<h1>hi</h1>"
        blobs = list((Path(test_config.cache_dir) / "oci" / "blobs" / "sha256").iterdir())
        assert len(blobs) == 1

    def test_remote_without_component_tarball(self, tmp_path, test_config, remote_from_files):
        remote = skeleton_remote(tmp_path, remote_from_files, [{"name": "web", "images": ["nginx:1.25"]}])
        app = tmp_path / "app"
        app.mkdir()
        head = Component.from_dict({"name": "web", "import": {"url": SKELETON_URL}})
        chain = new_import_chain(
            head, 0, "app", "amd64", config=test_config, working_dir=app, remote_factory=lambda url: remote,
        )

        composed = chain.compose()

        assert composed.images == ["nginx:1.25"]
        assert (app / chain.tail.relative_to_head).is_dir()

    def test_remote_component_cannot_import(self, tmp_path, test_config, remote_from_files):
        remote = skeleton_remote(
            tmp_path, remote_from_files, [{"name": "web", "import": {"path": "../other"}}],
        )
        head = Component.from_dict({"name": "web", "import": {"url": SKELETON_URL}})
        with pytest.raises(RemoteImportError, match="cannot import local components from remote components") as exc:
            new_import_chain(head, 0, "app", "amd64", config=test_config, remote_factory=lambda url: remote)
        assert len(exc.value.chain) == 2

    def test_missing_skeleton(self, test_config):
        class Missing(PackageRemote):
            def fetch_root(self):
                raise SourceError("manifest unknown")

        head = Component.from_dict({"name": "web", "import": {"url": SKELETON_URL}})
        with pytest.raises(ImportChainError, match="does not exist"):
            new_import_chain(head, 0, "app", "amd64", config=test_config, remote_factory=lambda url: Missing(None))


class TestCompose:
    """Tests for folding a chain into one component."""

    def test_single_component(self):
        chain = chain_from_components([Component(name="no-import")])
        assert chain.compose() == Component(name="no-import")

    def test_multiple_components(self):
        chain = chain_from_components([
            dummy_component("hello", "hello", "hello"),
            dummy_component("world", "world", "world"),
            dummy_component("today", "", "hello"),
        ])

        composed = chain.compose()

        assert composed.name == "import-hello"
        assert [f.source for f in composed.files] == ["hello/world/today.txt", "hello/world.txt", "hello.txt"]

        assert [(c.name, c.local_path, c.values_files) for c in composed.charts] == [
            ("hello", "hello/world/chart", ["hello/world/values.yaml", "values.yaml"]),
            ("world", "hello/chart", ["hello/values.yaml"]),
        ]
        assert [(m.name, m.files) for m in composed.manifests] == [
            ("hello", ["hello/world/manifest.yaml", "manifest.yaml"]),
            ("world", ["hello/manifest.yaml"]),
        ]
        assert [d.source for d in composed.data_injections] == ["hello/world/today", "hello/world", "hello"]

        on_create = composed.actions.on_create
        assert on_create.defaults.dir == "hello-dc"
        expected_dirs = ["hello/world/today-dc", "hello/world-dc", "hello-dc"]
        for actions, suffix in (
            (on_create.before, "bc"),
            (on_create.after, "ac"),
            (on_create.on_success, "sc"),
            (on_create.on_failure, "fc"),
        ):
            assert [a.cmd for a in actions] == [f"today-{suffix}", f"world-{suffix}", f"hello-{suffix}"]
            assert [a.dir for a in actions] == expected_dirs

        on_deploy = composed.actions.on_deploy
        assert on_deploy.defaults.dir == "hello-dd"
        assert [a.cmd for a in on_deploy.before] == ["today-bd", "world-bd", "hello-bd"]
        assert all(a.dir is None for a in on_deploy.before + on_deploy.after)
        assert composed.actions.on_remove.defaults.dir == "hello-dr"
        assert [a.cmd for a in composed.actions.on_remove.on_failure] == ["today-fr", "world-fr", "hello-fr"]

        bigbang = composed.extensions.bigbang
        assert bigbang.values_files == ["hello/world/values.yaml", "hello/values.yaml", "values.yaml"]
        assert bigbang.flux_patch_files == ["hello/world/patch.yaml", "hello/patch.yaml", "patch.yaml"]

    def test_compose_does_not_modify_nodes(self):
        chain = chain_from_components([
            dummy_component("hello", "hello", "hello"),
            dummy_component("world", "", "world"),
        ])
        chain.compose()
        assert chain.tail.component.files[0].source == "world.txt"

    def test_metadata_overrides(self):
        chain = chain_from_components([
            Component.from_dict({"name": "web", "import": {"path": "base"}, "default": True}),
            Component.from_dict({
                "name": "web",
                "description": "from base",
                "required": True,
                "only": {"localOS": "linux"},
                "images": ["nginx:1.25"],
            }),
        ])

        composed = chain.compose()

        assert composed.description == "from base"
        assert composed.required is True
        assert composed.default is True
        assert composed.only.local_os == "linux"
        assert composed.images == ["nginx:1.25"]

    def test_explicit_required_false_wins(self):
        chain = chain_from_components([
            Component.from_dict({"name": "web", "import": {"path": "base"}, "required": False}),
            Component.from_dict({"name": "web", "required": True}),
        ])
        assert chain.compose().required is False

    def test_local_os_redefinition(self):
        chain = chain_from_components([
            Component.from_dict({"name": "web", "import": {"path": "base"}, "only": {"localOS": "windows"}}),
            Component.from_dict({"name": "web", "only": {"localOS": "linux"}}),
        ])
        with pytest.raises(LocalOSRedefinitionError):
            chain.compose()

    def test_explicit_action_dir_is_rewritten(self):
        chain = chain_from_components([
            Component.from_dict({"name": "web", "import": {"path": "base"}}),
            Component.from_dict({
                "name": "web",
                "actions": {"onCreate": {"before": [{"cmd": "make", "dir": "scripts"}, {"cmd": "ls", "dir": ""}]}},
                "cosignKeyPath": "cosign.pub",
                "files": [{"source": "https://example.com/file.txt"}],
            }),
        ])

        composed = chain.compose()

        assert [a.dir for a in composed.actions.on_create.before] == ["base/scripts", "base"]
        assert composed.cosign_key_path == "base/cosign.pub"
        assert composed.files[0].source == "https://example.com/file.txt"


class TestMigrate:
    """Tests for migrating deprecated fields across a chain."""

    def test_reports_head(self):
        chain = chain_from_components([
            Component.from_dict({"name": "web", "import": {"path": "base"}}),
            Component.from_dict({"name": "web", "scripts": {"before": ["./pre.sh"]}}),
        ])

        warnings = chain.migrate(BuildData())

        assert len(warnings) == 2
        assert warnings[-1] == 'Migrations were performed on the import chain of: "web"'
        assert [a.cmd for a in chain.tail.component.actions.on_deploy.before] == ["./pre.sh"]

    def test_clean_chain_has_no_warnings(self):
        chain = chain_from_components([Component(name="web")])
        assert chain.migrate(BuildData()) == []


class TestMerging:
    """Tests for merging package variables and constants."""

    @pytest.fixture
    def chain(self):
        chain = ImportChain()
        chain.append(
            Component(name="web"), 0, "app", ".",
            variables=[Variable(name="TEST", default="head"), Variable(name="HEAD")],
            constants=[Constant(name="TEST", value="head"), Constant(name="HEAD")],
        )
        chain.append(
            Component(name="web"), 0, "base", "base",
            variables=[Variable(name="TEST", default="tail"), Variable(name="TAIL")],
            constants=[Constant(name="TEST", value="tail"), Constant(name="TAIL")],
        )
        return chain

    def test_empty_chain(self):
        existing = [Variable(name="TEST")]
        assert ImportChain().merge_variables(existing) == existing
        assert ImportChain().merge_constants([Constant(name="TEST")]) == [Constant(name="TEST")]

    def test_no_existing(self, chain):
        assert chain.merge_variables([]) == [
            Variable(name="TEST", default="head"), Variable(name="HEAD"), Variable(name="TAIL"),
        ]
        assert chain.merge_constants([]) == [
            Constant(name="TEST", value="head"), Constant(name="HEAD"), Constant(name="TAIL"),
        ]

    def test_with_existing(self, chain):
        merged = chain.merge_variables([Variable(name="TEST", default="existing"), Variable(name="EXISTING")])
        assert merged == [
            Variable(name="TEST", default="existing"),
            Variable(name="EXISTING"),
            Variable(name="HEAD"),
            Variable(name="TAIL"),
        ]
        merged = chain.merge_constants([Constant(name="TEST", value="existing"), Constant(name="EXISTING")])
        assert [c.value for c in merged if c.name == "TEST"] == ["existing"]
        assert [c.name for c in merged] == ["TEST", "EXISTING", "HEAD", "TAIL"]


@pytest.mark.parametrize("path,relative_to,expected", [
    ("values.yaml", "", "values.yaml"),
    ("values.yaml", ".", "values.yaml"),
    ("values.yaml", "base", "base/values.yaml"),
    ("../values.yaml", "base/nested", "base/values.yaml"),
    ("https://example.com/values.yaml", "base", "https://example.com/values.yaml"),
])
def test_make_path_relative_to(path, relative_to, expected):
    assert make_path_relative_to(path, relative_to) == expected
