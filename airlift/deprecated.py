"""
Migrations for deprecated component fields.

Each migration rewrites a component into its current form and reports a
human-readable warning. Once a package records the migration name in
build.migrations, the deprecated field is simply cleared instead.
"""

import copy
import sys

from airlift.schemas import (
    MIGRATION_PLURALIZE_SET_VARIABLE,
    MIGRATION_SCRIPTS_TO_ACTIONS,
    Action,
    ActionDefaults,
    BuildData,
    Component,
    DeprecatedScripts,
    SetVariable,
)


def migrate_component(build: BuildData, component: Component) -> tuple[Component, list[str]]:
    """
    Run every migration on a component.

    Args:
        build: Build record of the package the component came from
        component: Component to migrate (not modified)

    Returns:
        (migrated copy, warnings)
    """
    migrated = copy.deepcopy(component)
    warnings = []

    if MIGRATION_SCRIPTS_TO_ACTIONS in build.migrations:
        migrated.scripts = DeprecatedScripts()
    else:
        warning = _scripts_to_actions(migrated)
        if warning:
            warnings.append(warning)

    if MIGRATION_PLURALIZE_SET_VARIABLE in build.migrations:
        for action in _all_actions(migrated):
            action.set_variable = ""
    else:
        warning = _set_variable_to_set_variables(migrated)
        if warning:
            warnings.append(warning)

    if component.group:
        warnings.append(
            f"Component {component.name} is using group which has been deprecated and will be "
            "removed in v1.0.0.  Please migrate to another solution."
        )

    return migrated, warnings


def _all_actions(component: Component) -> list[Action]:
    actions = []
    for action_set in (
        component.actions.on_create,
        component.actions.on_deploy,
        component.actions.on_remove,
    ):
        actions.extend(action_set.before)
        actions.extend(action_set.after)
        actions.extend(action_set.on_success)
        actions.extend(action_set.on_failure)
    return actions


def _scripts_to_actions(component: Component) -> str:
    # No migration for onCreate.after, onRemove, onSuccess/onFailure or env
    scripts = component.scripts
    defaults = ActionDefaults(
        mute=not scripts.show_output,
        max_total_seconds=scripts.timeout_seconds,
        # retry was an implicit infinite retry
        max_retries=sys.maxsize if scripts.retry else 0,
    )

    has_scripts = False
    if scripts.prepare:
        has_scripts = True
        component.actions.on_create.defaults = copy.deepcopy(defaults)
        component.actions.on_create.before.extend(Action(cmd=s) for s in scripts.prepare)
    if scripts.before:
        has_scripts = True
        component.actions.on_deploy.defaults = copy.deepcopy(defaults)
        component.actions.on_deploy.before.extend(Action(cmd=s) for s in scripts.before)
    if scripts.after:
        has_scripts = True
        component.actions.on_deploy.defaults = copy.deepcopy(defaults)
        component.actions.on_deploy.after.extend(Action(cmd=s) for s in scripts.after)

    if has_scripts:
        return (
            f"Component '{component.name}' is using scripts which will be removed in v1.0.0. "
            "Please migrate to actions."
        )
    return ""


def _set_variable_to_set_variables(component: Component) -> str:
    found = False
    for action in _all_actions(component):
        if action.set_variable and not action.set_variables:
            found = True
            action.set_variables = [SetVariable(name=action.set_variable)]

    if found:
        return (
            f"Component '{component.name}' is using setVariable in actions which will be removed "
            "in v1.0.0. Please migrate to the list form of setVariables."
        )
    return ""
