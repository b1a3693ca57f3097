"""Tests for deprecated field migrations."""

import sys

from airlift.deprecated import migrate_component
from airlift.schemas import (
    MIGRATION_PLURALIZE_SET_VARIABLE,
    MIGRATION_SCRIPTS_TO_ACTIONS,
    BuildData,
    Component,
)


def scripted_component():
    return Component.from_dict({
        "name": "web",
        "scripts": {
            "showOutput": False,
            "timeoutSeconds": 60,
            "retry": True,
            "prepare": ["make build"],
            "before": ["./pre.sh"],
            "after": ["./post.sh"],
        },
    })


class TestScriptsToActions:
    """Tests for the scripts -> actions migration."""

    def test_moves_scripts_into_actions(self):
        migrated, warnings = migrate_component(BuildData(), scripted_component())

        on_create = migrated.actions.on_create
        assert [a.cmd for a in on_create.before] == ["make build"]
        assert on_create.defaults.mute is True
        assert on_create.defaults.max_total_seconds == 60
        assert on_create.defaults.max_retries == sys.maxsize

        on_deploy = migrated.actions.on_deploy
        assert [a.cmd for a in on_deploy.before] == ["./pre.sh"]
        assert [a.cmd for a in on_deploy.after] == ["./post.sh"]
        assert any("scripts" in w for w in warnings)

    def test_input_is_not_modified(self):
        component = scripted_component()
        migrate_component(BuildData(), component)
        assert component.actions.on_create.before == []

    def test_recorded_migration_clears_scripts(self):
        build = BuildData(migrations=[MIGRATION_SCRIPTS_TO_ACTIONS])
        migrated, warnings = migrate_component(build, scripted_component())
        assert not migrated.scripts.is_set
        assert migrated.actions.on_create.before == []
        assert warnings == []


class TestSetVariable:
    """Tests for the setVariable -> setVariables migration."""

    def component(self):
        return Component.from_dict({
            "name": "web",
            "actions": {"onDeploy": {"after": [{"cmd": "echo hi", "setVariable": "GREETING"}]}},
        })

    def test_pluralizes(self):
        migrated, warnings = migrate_component(BuildData(), self.component())
        action = migrated.actions.on_deploy.after[0]
        assert [v.name for v in action.set_variables] == ["GREETING"]
        assert any("setVariable" in w for w in warnings)

    def test_recorded_migration_clears_singular_form(self):
        build = BuildData(migrations=[MIGRATION_PLURALIZE_SET_VARIABLE])
        migrated, warnings = migrate_component(build, self.component())
        action = migrated.actions.on_deploy.after[0]
        assert action.set_variable == ""
        assert action.set_variables == []
        assert warnings == []


def test_group_is_reported():
    _, warnings = migrate_component(BuildData(), Component(name="web", group="g"))
    assert any("group" in w for w in warnings)


def test_clean_component_has_no_warnings():
    _, warnings = migrate_component(BuildData(), Component(name="web"))
    assert warnings == []
