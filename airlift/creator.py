"""
Package creation steps that run before anything is written to disk.

- compose_components: resolve every component's import chain into one
  component and merge package variables and constants
- load_differential_data / remove_copies_from_components: drop images and
  repos a reference package already ships
"""

import copy
import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from airlift.composer import compatible_component, compose_package_component
from airlift.composer.chain import RemoteFactory
from airlift.config import AirliftConfig
from airlift.errors import ValidationError
from airlift.layout import PackageLayout
from airlift.schemas import Component, DifferentialData, PackageDefinition
from airlift.sources import PackageOptions, new_source
from airlift.transform import git_url_split_ref, is_git_hash, is_tag_ref, parse_git_ref, parse_image_ref


logger = logging.getLogger(__name__)

# Tags that move, so a reference package having them proves nothing
FLOATING_TAGS = (":latest", ":stable", ":nightly")


def compose_components(
    pkg: PackageDefinition,
    flavor: str = "",
    config: Optional[AirliftConfig] = None,
    working_dir: Union[str, Path] = ".",
    remote_factory: Optional[RemoteFactory] = None,
) -> tuple[PackageDefinition, list[str]]:
    """
    Compose every component compatible with the package architecture and flavor.

    Matching components have their architecture and flavor selectors cleared
    so the written definition carries no dead selectors.

    Returns:
        (copy of pkg with composed components and merged values, migration warnings)
    """
    pkg = copy.deepcopy(pkg)
    arch = pkg.metadata.architecture
    components = []
    warnings: list[str] = []
    variables = pkg.variables
    constants = pkg.constants

    for index, component in enumerate(pkg.components):
        if not compatible_component(component, arch, flavor):
            logger.debug(f"Skipping component {component.name}: not compatible with {arch}/{flavor or 'no flavor'}")
            continue

        component.only.cluster.architecture = ""
        component.only.flavor = ""

        composed, chain, component_warnings = compose_package_component(
            pkg, component, index, arch, flavor,
            config=config, working_dir=working_dir, remote_factory=remote_factory,
        )
        warnings.extend(component_warnings)
        components.append(composed)

        variables = chain.merge_variables(variables)
        constants = chain.merge_constants(constants)

    pkg.components = components
    pkg.variables = variables
    pkg.constants = constants
    return pkg, warnings


def load_differential_data(reference_source: str, config: Optional[AirliftConfig] = None) -> DifferentialData:
    """Collect the images and repos shipped by a reference package, reading only its metadata."""
    config = config or AirliftConfig()
    tmp = config.make_temp_dir()
    try:
        source = new_source(PackageOptions(package_source=reference_source), config)
        reference, _ = source.load_package_metadata(PackageLayout(tmp), False, False)
    finally:
        shutil.rmtree(tmp, ignore_errors=True)

    data = DifferentialData(package_version=reference.metadata.version)
    for component in reference.components:
        data.images.update(component.images)
        data.repos.update(component.repos)
    logger.info(
        f"Reference package {reference.metadata.name} {reference.metadata.version} ships "
        f"{len(data.images)} images and {len(data.repos)} repos"
    )
    return data


def _keep_image(image: str, diff: DifferentialData) -> bool:
    try:
        ref = parse_image_ref(image)
    except ValidationError as e:
        raise ValidationError(f"unable to parse image ref {image}: {e}") from e
    return ref.tag_or_digest in FLOATING_TAGS or image not in diff.images


def _keep_repo(repo: str, diff: DifferentialData) -> bool:
    _, ref = git_url_split_ref(repo)
    # Unpinned repos and branch pins may have moved since the reference was built
    pinned = bool(ref) and (is_tag_ref(parse_git_ref(ref)) or is_git_hash(ref))
    return not pinned or repo not in diff.repos


def remove_copies_from_components(components: list[Component], diff: DifferentialData) -> list[Component]:
    """
    Drop images and repos the reference package already carries.

    Images with a floating tag and repos not pinned to a tag or commit are
    always kept.

    Raises:
        ValidationError: If an image or repo reference cannot be parsed
    """
    result = []
    for component in components:
        component = copy.deepcopy(component)
        component.images = [image for image in component.images if _keep_image(image, diff)]
        component.repos = [repo for repo in component.repos if _keep_repo(repo, diff)]
        result.append(component)
    return result
