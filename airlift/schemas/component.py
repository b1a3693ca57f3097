"""
Component schema - the unit of deployment inside a package.

A Component is identified by name. Its resources (files, charts, manifests,
images, repos, data injections) and its lifecycle actions are what the import
chain composes; the selectors under `only` decide which components survive
for a given architecture, flavor and local OS.

Keys are camelCase in YAML and snake_case here.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .serde import omit_empty, str_list


@dataclass
class ImportRef:
    """
    Reference to a component defined in another package.

    Exactly one of path (local directory relative to the importer) or url
    (oci:// skeleton reference) must be set. name overrides the component
    name looked up in the imported package.
    """
    name: str = ""
    path: str = ""
    url: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.path or self.url)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ImportRef":
        data = data or {}
        return cls(name=data.get("name", ""), path=data.get("path", ""), url=data.get("url", ""))

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({"name": self.name, "path": self.path, "url": self.url})


@dataclass
class ClusterTarget:
    architecture: str = ""
    distros: list[str] = field(default_factory=list)


@dataclass
class Only:
    """Selectors restricting where a component applies."""
    local_os: str = ""
    cluster: ClusterTarget = field(default_factory=ClusterTarget)
    flavor: str = ""

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Only":
        data = data or {}
        cluster = data.get("cluster") or {}
        return cls(
            local_os=data.get("localOS", ""),
            cluster=ClusterTarget(
                architecture=cluster.get("architecture", ""),
                distros=str_list(cluster.get("distros")),
            ),
            flavor=data.get("flavor", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "localOS": self.local_os,
            "cluster": omit_empty({
                "architecture": self.cluster.architecture,
                "distros": list(self.cluster.distros),
            }),
            "flavor": self.flavor,
        })


@dataclass
class File:
    source: str
    target: str = ""
    shasum: str = ""
    executable: bool = False
    symlinks: list[str] = field(default_factory=list)
    extract_path: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "File":
        return cls(
            source=data.get("source", ""),
            target=data.get("target", ""),
            shasum=data.get("shasum", ""),
            executable=bool(data.get("executable", False)),
            symlinks=str_list(data.get("symlinks")),
            extract_path=data.get("extractPath", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "source": self.source,
            "shasum": self.shasum,
            "target": self.target,
            "executable": self.executable,
            "symlinks": list(self.symlinks),
            "extractPath": self.extract_path,
        })


@dataclass
class Chart:
    name: str
    version: str = ""
    url: str = ""
    repo_name: str = ""
    git_path: str = ""
    local_path: str = ""
    namespace: str = ""
    release_name: str = ""
    no_wait: bool = False
    values_files: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Chart":
        return cls(
            name=data.get("name", ""),
            version=data.get("version", ""),
            url=data.get("url", ""),
            repo_name=data.get("repoName", ""),
            git_path=data.get("gitPath", ""),
            local_path=data.get("localPath", ""),
            namespace=data.get("namespace", ""),
            release_name=data.get("releaseName", ""),
            no_wait=bool(data.get("noWait", False)),
            values_files=str_list(data.get("valuesFiles")),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "name": self.name,
            "releaseName": self.release_name,
            "url": self.url,
            "version": self.version,
            "repoName": self.repo_name,
            "gitPath": self.git_path,
            "localPath": self.local_path,
            "namespace": self.namespace,
            "noWait": self.no_wait,
            "valuesFiles": list(self.values_files),
        })


@dataclass
class Manifest:
    name: str
    namespace: str = ""
    files: list[str] = field(default_factory=list)
    kustomize_allow_any_directory: bool = False
    kustomizations: list[str] = field(default_factory=list)
    no_wait: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            files=str_list(data.get("files")),
            kustomize_allow_any_directory=bool(data.get("kustomizeAllowAnyDirectory", False)),
            kustomizations=str_list(data.get("kustomizations")),
            no_wait=bool(data.get("noWait", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "name": self.name,
            "namespace": self.namespace,
            "files": list(self.files),
            "kustomizeAllowAnyDirectory": self.kustomize_allow_any_directory,
            "kustomizations": list(self.kustomizations),
            "noWait": self.no_wait,
        })


@dataclass
class DataInjection:
    """Payload copied into a running container. target is kept as written."""
    source: str
    target: dict[str, Any] = field(default_factory=dict)
    compress: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "DataInjection":
        return cls(
            source=data.get("source", ""),
            target=dict(data.get("target") or {}),
            compress=bool(data.get("compress", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({"source": self.source, "target": dict(self.target), "compress": self.compress})


@dataclass
class SetVariable:
    name: str
    sensitive: bool = False
    auto_indent: bool = False
    pattern: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "SetVariable":
        return cls(
            name=data.get("name", ""),
            sensitive=bool(data.get("sensitive", False)),
            auto_indent=bool(data.get("autoIndent", False)),
            pattern=data.get("pattern", ""),
            type=data.get("type", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "name": self.name,
            "sensitive": self.sensitive,
            "autoIndent": self.auto_indent,
            "pattern": self.pattern,
            "type": self.type,
        })


@dataclass
class Action:
    """
    One lifecycle command.

    dir is None when unset so composition can tell "unset" apart from an
    explicit empty directory. set_variable is the deprecated singular form.
    """
    cmd: str = ""
    mute: Optional[bool] = None
    max_total_seconds: Optional[int] = None
    max_retries: Optional[int] = None
    dir: Optional[str] = None
    env: list[str] = field(default_factory=list)
    shell: dict[str, Any] = field(default_factory=dict)
    set_variable: str = ""
    set_variables: list[SetVariable] = field(default_factory=list)
    description: str = ""
    wait: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Action":
        return cls(
            cmd=data.get("cmd", ""),
            mute=data.get("mute"),
            max_total_seconds=data.get("maxTotalSeconds"),
            max_retries=data.get("maxRetries"),
            dir=data.get("dir"),
            env=str_list(data.get("env")),
            shell=dict(data.get("shell") or {}),
            set_variable=data.get("setVariable", ""),
            set_variables=[SetVariable.from_dict(v) for v in data.get("setVariables") or []],
            description=data.get("description", ""),
            wait=dict(data.get("wait") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        out = omit_empty({
            "cmd": self.cmd,
            "maxTotalSeconds": self.max_total_seconds,
            "maxRetries": self.max_retries,
            "env": list(self.env),
            "shell": dict(self.shell),
            "setVariable": self.set_variable,
            "setVariables": [v.to_dict() for v in self.set_variables],
            "description": self.description,
            "wait": dict(self.wait),
        })
        if self.mute is not None:
            out["mute"] = self.mute
        if self.dir is not None:
            out["dir"] = self.dir
        return out


@dataclass
class ActionDefaults:
    mute: bool = False
    max_total_seconds: int = 0
    max_retries: int = 0
    dir: str = ""
    env: list[str] = field(default_factory=list)
    shell: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ActionDefaults":
        data = data or {}
        return cls(
            mute=bool(data.get("mute", False)),
            max_total_seconds=int(data.get("maxTotalSeconds", 0) or 0),
            max_retries=int(data.get("maxRetries", 0) or 0),
            dir=data.get("dir", ""),
            env=str_list(data.get("env")),
            shell=dict(data.get("shell") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "mute": self.mute,
            "maxTotalSeconds": self.max_total_seconds,
            "maxRetries": self.max_retries,
            "dir": self.dir,
            "env": list(self.env),
            "shell": dict(self.shell),
        })


@dataclass
class ActionSet:
    defaults: ActionDefaults = field(default_factory=ActionDefaults)
    before: list[Action] = field(default_factory=list)
    after: list[Action] = field(default_factory=list)
    on_success: list[Action] = field(default_factory=list)
    on_failure: list[Action] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ActionSet":
        data = data or {}
        return cls(
            defaults=ActionDefaults.from_dict(data.get("defaults")),
            before=[Action.from_dict(a) for a in data.get("before") or []],
            after=[Action.from_dict(a) for a in data.get("after") or []],
            on_success=[Action.from_dict(a) for a in data.get("onSuccess") or []],
            on_failure=[Action.from_dict(a) for a in data.get("onFailure") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "defaults": self.defaults.to_dict(),
            "before": [a.to_dict() for a in self.before],
            "after": [a.to_dict() for a in self.after],
            "onSuccess": [a.to_dict() for a in self.on_success],
            "onFailure": [a.to_dict() for a in self.on_failure],
        })


@dataclass
class Actions:
    on_create: ActionSet = field(default_factory=ActionSet)
    on_deploy: ActionSet = field(default_factory=ActionSet)
    on_remove: ActionSet = field(default_factory=ActionSet)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Actions":
        data = data or {}
        return cls(
            on_create=ActionSet.from_dict(data.get("onCreate")),
            on_deploy=ActionSet.from_dict(data.get("onDeploy")),
            on_remove=ActionSet.from_dict(data.get("onRemove")),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "onCreate": self.on_create.to_dict(),
            "onDeploy": self.on_deploy.to_dict(),
            "onRemove": self.on_remove.to_dict(),
        })


@dataclass
class DeprecatedScripts:
    """Pre-actions lifecycle hooks, migrated into Actions with a warning."""
    show_output: bool = False
    timeout_seconds: int = 0
    retry: bool = False
    prepare: list[str] = field(default_factory=list)
    before: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)

    @property
    def is_set(self) -> bool:
        return bool(self.prepare or self.before or self.after)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DeprecatedScripts":
        data = data or {}
        return cls(
            show_output=bool(data.get("showOutput", False)),
            timeout_seconds=int(data.get("timeoutSeconds", 0) or 0),
            retry=bool(data.get("retry", False)),
            prepare=str_list(data.get("prepare")),
            before=str_list(data.get("before")),
            after=str_list(data.get("after")),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "showOutput": self.show_output,
            "timeoutSeconds": self.timeout_seconds,
            "retry": self.retry,
            "prepare": list(self.prepare),
            "before": list(self.before),
            "after": list(self.after),
        })


@dataclass
class BigBang:
    version: str = ""
    repo: str = ""
    values_files: list[str] = field(default_factory=list)
    skip_flux: bool = False
    flux_patch_files: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "BigBang":
        return cls(
            version=data.get("version", ""),
            repo=data.get("repo", ""),
            values_files=str_list(data.get("valuesFiles")),
            skip_flux=bool(data.get("skipFlux", False)),
            flux_patch_files=str_list(data.get("fluxPatchFiles")),
        )

    def to_dict(self) -> dict[str, Any]:
        return omit_empty({
            "version": self.version,
            "repo": self.repo,
            "valuesFiles": list(self.values_files),
            "skipFlux": self.skip_flux,
            "fluxPatchFiles": list(self.flux_patch_files),
        })


@dataclass
class Extensions:
    bigbang: Optional[BigBang] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Extensions":
        data = data or {}
        bigbang = data.get("bigbang")
        return cls(bigbang=BigBang.from_dict(bigbang) if bigbang is not None else None)

    def to_dict(self) -> dict[str, Any]:
        if self.bigbang is None:
            return {}
        return {"bigbang": self.bigbang.to_dict()}


@dataclass
class Component:
    """
    A named deployable unit.

    Attributes:
        name: Unique within a package; the merge key for imports
        default: Selected when no explicit request is made
        required: None when unset so composition keeps the importer's value
        only: Selectors (localOS, cluster.architecture, flavor)
        import_: Where this component's base definition lives
        group, cosign_key_path, scripts: deprecated fields kept for migration
    """
    name: str
    description: str = ""
    default: bool = False
    required: Optional[bool] = None
    only: Only = field(default_factory=Only)
    group: str = ""
    cosign_key_path: str = ""
    import_: ImportRef = field(default_factory=ImportRef)
    manifests: list[Manifest] = field(default_factory=list)
    charts: list[Chart] = field(default_factory=list)
    data_injections: list[DataInjection] = field(default_factory=list)
    files: list[File] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    repos: list[str] = field(default_factory=list)
    extensions: Extensions = field(default_factory=Extensions)
    scripts: DeprecatedScripts = field(default_factory=DeprecatedScripts)
    actions: Actions = field(default_factory=Actions)

    @property
    def is_required(self) -> bool:
        return bool(self.required)

    @classmethod
    def from_dict(cls, data: dict) -> "Component":
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            default=bool(data.get("default", False)),
            required=data.get("required"),
            only=Only.from_dict(data.get("only")),
            group=data.get("group", ""),
            cosign_key_path=data.get("cosignKeyPath", ""),
            import_=ImportRef.from_dict(data.get("import")),
            manifests=[Manifest.from_dict(m) for m in data.get("manifests") or []],
            charts=[Chart.from_dict(c) for c in data.get("charts") or []],
            data_injections=[DataInjection.from_dict(d) for d in data.get("dataInjections") or []],
            files=[File.from_dict(f) for f in data.get("files") or []],
            images=str_list(data.get("images")),
            repos=str_list(data.get("repos")),
            extensions=Extensions.from_dict(data.get("extensions")),
            scripts=DeprecatedScripts.from_dict(data.get("scripts")),
            actions=Actions.from_dict(data.get("actions")),
        )

    def to_dict(self) -> dict[str, Any]:
        out = omit_empty({
            "name": self.name,
            "description": self.description,
            "default": self.default,
            "only": self.only.to_dict(),
            "group": self.group,
            "cosignKeyPath": self.cosign_key_path,
            "import": self.import_.to_dict(),
            "manifests": [m.to_dict() for m in self.manifests],
            "charts": [c.to_dict() for c in self.charts],
            "dataInjections": [d.to_dict() for d in self.data_injections],
            "files": [f.to_dict() for f in self.files],
            "images": list(self.images),
            "repos": list(self.repos),
            "extensions": self.extensions.to_dict(),
            "scripts": self.scripts.to_dict(),
            "actions": self.actions.to_dict(),
        })
        if self.required is not None:
            out["required"] = self.required
        return out
