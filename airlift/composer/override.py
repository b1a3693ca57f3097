"""
Override rules applied while folding an import chain into one component.

The fold starts from an empty component and walks tail to head, so each
rule sees the imported definition first and the importing definition last.
Before a node is merged, fix_paths rewrites its file references relative to
the head package.
"""

import copy
import posixpath

from airlift.errors import LocalOSRedefinitionError
from airlift.schemas import Action, BigBang, Component
from airlift.utils import is_url


def make_path_relative_to(path: str, relative_to: str) -> str:
    """Join a local path onto relative_to; URLs are returned unchanged."""
    if is_url(path):
        return path
    return posixpath.normpath(posixpath.join(relative_to, path)) if relative_to else path


def fix_paths(child: Component, relative_to: str) -> None:
    """Rewrite every file-like reference in child relative to the head package."""
    for f in child.files:
        f.source = make_path_relative_to(f.source, relative_to)

    for chart in child.charts:
        chart.values_files = [make_path_relative_to(v, relative_to) for v in chart.values_files]
        if chart.local_path:
            chart.local_path = make_path_relative_to(chart.local_path, relative_to)

    for manifest in child.manifests:
        manifest.files = [make_path_relative_to(f, relative_to) for f in manifest.files]
        manifest.kustomizations = [make_path_relative_to(k, relative_to) for k in manifest.kustomizations]

    for injection in child.data_injections:
        injection.source = make_path_relative_to(injection.source, relative_to)

    on_create = child.actions.on_create
    default_dir = on_create.defaults.dir
    for actions in (on_create.before, on_create.after, on_create.on_success, on_create.on_failure):
        _fix_action_dirs(actions, default_dir, relative_to)

    if child.cosign_key_path:
        child.cosign_key_path = make_path_relative_to(child.cosign_key_path, relative_to)


def _fix_action_dirs(actions: list[Action], default_dir: str, relative_to: str) -> None:
    # Create-time commands run from the head package, so their dirs move with the import
    for action in actions:
        directory = action.dir if action.dir is not None else default_dir
        action.dir = make_path_relative_to(directory, relative_to)


def override_metadata(composed: Component, override: Component) -> None:
    """
    Merge identity and selector fields.

    Raises:
        LocalOSRedefinitionError: If the two disagree on only.localOS
    """
    composed.name = override.name
    composed.default = override.default
    if override.required is not None:
        composed.required = override.required

    if override.description:
        composed.description = override.description

    if override.only.local_os:
        if composed.only.local_os and composed.only.local_os != override.only.local_os:
            raise LocalOSRedefinitionError(composed.name, composed.only.local_os, override.only.local_os)
        composed.only.local_os = override.only.local_os


def override_deprecated(composed: Component, override: Component) -> None:
    if override.cosign_key_path:
        composed.cosign_key_path = override.cosign_key_path

    if override.group:
        composed.group = override.group

    scripts = override.scripts
    if scripts.show_output:
        composed.scripts.show_output = True
    if scripts.timeout_seconds > 0:
        composed.scripts.timeout_seconds = scripts.timeout_seconds
    if scripts.retry:
        composed.scripts.retry = True
    composed.scripts.prepare.extend(scripts.prepare)
    composed.scripts.before.extend(scripts.before)
    composed.scripts.after.extend(scripts.after)


def override_resources(composed: Component, override: Component) -> None:
    composed.data_injections.extend(copy.deepcopy(override.data_injections))
    composed.files.extend(copy.deepcopy(override.files))
    composed.images.extend(override.images)
    composed.repos.extend(override.repos)

    charts = {chart.name: chart for chart in composed.charts}
    for chart in override.charts:
        existing = charts.get(chart.name)
        if existing is None:
            chart = copy.deepcopy(chart)
            composed.charts.append(chart)
            charts[chart.name] = chart
            continue
        if chart.namespace:
            existing.namespace = chart.namespace
        if chart.release_name:
            existing.release_name = chart.release_name
        existing.values_files.extend(chart.values_files)

    manifests = {manifest.name: manifest for manifest in composed.manifests}
    for manifest in override.manifests:
        existing = manifests.get(manifest.name)
        if existing is None:
            manifest = copy.deepcopy(manifest)
            composed.manifests.append(manifest)
            manifests[manifest.name] = manifest
            continue
        if manifest.namespace:
            existing.namespace = manifest.namespace
        existing.files.extend(manifest.files)
        existing.kustomizations.extend(manifest.kustomizations)


def override_actions(composed: Component, override: Component) -> None:
    for name in ("on_create", "on_deploy", "on_remove"):
        target = getattr(composed.actions, name)
        source = getattr(override.actions, name)
        target.defaults = copy.deepcopy(source.defaults)
        target.before.extend(copy.deepcopy(source.before))
        target.after.extend(copy.deepcopy(source.after))
        target.on_success.extend(copy.deepcopy(source.on_success))
        target.on_failure.extend(copy.deepcopy(source.on_failure))


def compose_extensions(composed: Component, override: Component, relative_to: str) -> None:
    """Merge the bigbang extension, rewriting its file references."""
    incoming = override.extensions.bigbang
    if incoming is None:
        return
    if composed.extensions.bigbang is None:
        composed.extensions.bigbang = BigBang()
    bigbang = composed.extensions.bigbang

    if incoming.version:
        bigbang.version = incoming.version
    if incoming.repo:
        bigbang.repo = incoming.repo
    bigbang.skip_flux = incoming.skip_flux

    bigbang.values_files.extend(make_path_relative_to(f, relative_to) for f in incoming.values_files)
    bigbang.flux_patch_files.extend(make_path_relative_to(f, relative_to) for f in incoming.flux_patch_files)
