import hashlib
from pathlib import Path

import pytest
import yaml

from airlift.config import AirliftConfig
from airlift.layout import PackageLayout
from airlift.oci.package import PackageRemote
from airlift.oci.remote import Remote, verify_blob
from airlift.oci.types import ANNOTATION_TITLE, MEDIA_TYPE_PACKAGE_LAYER, Descriptor, Manifest
from airlift.schemas import PackageDefinition
from airlift.signing import generate_key_pair


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.config/airlift."""
    monkeypatch.setenv("AIRLIFT_HOME", str(tmp_path / "airlift-home"))
    monkeypatch.delenv("AIRLIFT_ARCHITECTURE", raising=False)
    monkeypatch.delenv("AIRLIFT_CACHE", raising=False)


@pytest.fixture
def test_config(tmp_path):
    return AirliftConfig(
        cache_path=str(tmp_path / "cache"),
        temp_directory=str(tmp_path / "tmp"),
        architecture="amd64",
    )


@pytest.fixture
def key_pair(tmp_path):
    private = tmp_path / "keys" / "airlift.key"
    public = tmp_path / "keys" / "airlift.pub"
    private.parent.mkdir(parents=True)
    generate_key_pair(private, public)
    return private, public


def sample_definition(name="app", version="1.0.0", components=None):
    return PackageDefinition.from_dict({
        "kind": "AirliftPackageConfig",
        "metadata": {"name": name, "version": version, "architecture": "amd64"},
        "build": {"architecture": "amd64", "version": "v0.32.0"},
        "components": components if components is not None else [
            {"name": "web", "required": True, "files": [{"source": "web.txt", "target": "/opt/web.txt"}]},
            {"name": "db", "files": [{"source": "db.txt", "target": "/opt/db.txt"}]},
            {"name": "docs", "only": {"localOS": "windows"}},
        ],
    })


def build_package(base, pkg=None, contents=None, signing_key=None, sboms=None):
    """
    Write a complete package layout under base.

    contents maps component name -> {relative path: text}; components
    without contents get no tarball. sboms maps file name -> text.
    """
    pkg = pkg or sample_definition()
    if contents is None:
        contents = {"web": {"files/0/web.txt": "web"}, "db": {"files/0/db.txt": "db"}}
    layout = PackageLayout(base)
    layout.base.mkdir(parents=True, exist_ok=True)

    for component in pkg.components:
        paths = layout.components.create(component)
        for rel, text in contents.get(component.name, {}).items():
            target = paths.base / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text)
        layout.components.archive(component)

    if sboms:
        layout.add_sboms()
        layout.sboms.path.mkdir(parents=True)
        for name, text in sboms.items():
            (layout.sboms.path / name).write_text(text)
        layout.sboms.archive()

    pkg.metadata.aggregate_checksum = layout.generate_checksums()
    layout.write_definition(pkg)
    if signing_key:
        layout.sign_package(str(signing_key))
    return layout


class InMemoryRemote(Remote):
    """Serves the files of a package layout as OCI layers."""

    def __init__(self, files, reference="registry.example.com/acme/app:1.0.0"):
        self.reference = reference
        self.blobs = {}
        layers = []
        for title in sorted(files):
            data = Path(files[title]).read_bytes() if isinstance(files[title], Path) else files[title]
            digest = "sha256:" + hashlib.sha256(data).hexdigest()
            self.blobs[digest] = data
            layers.append(Descriptor(
                media_type=MEDIA_TYPE_PACKAGE_LAYER,
                digest=digest,
                size=len(data),
                annotations={ANNOTATION_TITLE: title},
            ))
        self.root = Manifest(layers=layers)
        self.fetched = []

    def fetch_root(self):
        return self.root

    def fetch_blob(self, desc):
        self.fetched.append(desc.title)
        return verify_blob(desc, self.blobs[desc.digest])


@pytest.fixture
def package_builder():
    return build_package


@pytest.fixture
def definition_factory():
    return sample_definition


@pytest.fixture
def remote_from_files():
    def make(files, reference="registry.example.com/acme/app:1.0.0"):
        return PackageRemote(InMemoryRemote(files, reference))
    return make


@pytest.fixture
def write_definition():
    """Write a raw airlift.yaml under a directory."""
    def write(directory, data):
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "airlift.yaml").write_text(yaml.safe_dump(data, sort_keys=False))
        return directory
    return write
