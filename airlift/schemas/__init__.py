"""
Definition schemas for airlift packages.

- PackageDefinition: the airlift.yaml document
- Component: a deployable unit and its resources
- Variable / Constant: package-level values merged across imports
"""

from .component import (
    Action,
    ActionDefaults,
    Actions,
    ActionSet,
    BigBang,
    Chart,
    ClusterTarget,
    Component,
    DataInjection,
    DeprecatedScripts,
    Extensions,
    File,
    ImportRef,
    Manifest,
    Only,
    SetVariable,
)
from .package import (
    INIT_KIND,
    MIGRATION_PLURALIZE_SET_VARIABLE,
    MIGRATION_SCRIPTS_TO_ACTIONS,
    PACKAGE_KIND,
    SKELETON_ARCH,
    BuildData,
    Constant,
    DifferentialData,
    Metadata,
    PackageDefinition,
    SplitPackageData,
    Variable,
)

__all__ = [
    "Action",
    "ActionDefaults",
    "Actions",
    "ActionSet",
    "BigBang",
    "BuildData",
    "Chart",
    "ClusterTarget",
    "Component",
    "Constant",
    "DataInjection",
    "DeprecatedScripts",
    "DifferentialData",
    "Extensions",
    "File",
    "ImportRef",
    "INIT_KIND",
    "Manifest",
    "Metadata",
    "MIGRATION_PLURALIZE_SET_VARIABLE",
    "MIGRATION_SCRIPTS_TO_ACTIONS",
    "Only",
    "PACKAGE_KIND",
    "PackageDefinition",
    "SetVariable",
    "SKELETON_ARCH",
    "SplitPackageData",
    "Variable",
]
