"""Tests for component filters."""

import pytest

from airlift.errors import FilterError, LocalOSRequiredError
from airlift.filters import (
    ByLocalOS,
    BySelectState,
    Combine,
    ComponentFilter,
    Empty,
    SelectState,
    glob_match,
    included_or_excluded,
)
from airlift.schemas import PackageDefinition


@pytest.fixture
def pkg():
    return PackageDefinition.from_dict({
        "components": [
            {"name": "web"},
            {"name": "web-debug"},
            {"name": "db", "only": {"localOS": "linux"}},
            {"name": "tools", "only": {"localOS": "windows"}},
        ],
    })


def names(components):
    return [c.name for c in components]


class TestEmpty:
    """Tests for the identity filter."""

    def test_keeps_everything(self, pkg):
        assert names(Empty().apply(pkg)) == ["web", "web-debug", "db", "tools"]


class TestByLocalOS:
    """Tests for ByLocalOS."""

    def test_drops_other_os(self, pkg):
        assert names(ByLocalOS("linux").apply(pkg)) == ["web", "web-debug", "db"]

    def test_requires_os(self, pkg):
        with pytest.raises(LocalOSRequiredError):
            ByLocalOS("").apply(pkg)


class TestBySelectState:
    """Tests for BySelectState."""

    def test_blank_request_keeps_everything(self, pkg):
        assert names(BySelectState("").apply(pkg)) == ["web", "web-debug", "db", "tools"]

    def test_globs_and_exclusions(self, pkg):
        assert names(BySelectState("web*,-*-debug").apply(pkg)) == ["web"]

    def test_exclusion_beats_inclusion(self):
        state, request = included_or_excluded("web", ["web", "-web"])
        assert state == SelectState.EXCLUDED
        assert request == "-web"

    def test_unknown_when_nothing_matches(self):
        assert included_or_excluded("db", ["web"]) == (SelectState.UNKNOWN, "")

    def test_keeps_package_order(self, pkg):
        assert names(BySelectState("db, web").apply(pkg)) == ["web", "db"]

    def test_does_not_modify_package(self, pkg):
        BySelectState("db").apply(pkg)
        assert len(pkg.components) == 4


class TestCombine:
    """Tests for Combine."""

    def test_applies_in_sequence(self, pkg):
        combined = Combine(BySelectState("web*,db,tools"), ByLocalOS("windows"))
        assert names(combined.apply(pkg)) == ["web", "web-debug", "tools"]
        assert len(pkg.components) == 4

    def test_wraps_filter_errors(self, pkg):
        with pytest.raises(FilterError, match="ByLocalOS"):
            Combine(Empty(), ByLocalOS("")).apply(pkg)

    def test_wraps_unexpected_errors_and_stops(self, pkg):
        class Broken(ComponentFilter):
            def apply(self, pkg):
                raise ValueError("boom")

        class Recorder(ComponentFilter):
            calls = 0

            def apply(self, pkg):
                Recorder.calls += 1
                return list(pkg.components)

        with pytest.raises(FilterError, match="error applying filter Broken: boom") as exc_info:
            Combine(Empty(), Broken(), Recorder()).apply(pkg)

        assert isinstance(exc_info.value.__cause__, ValueError)
        assert Recorder.calls == 0


class TestGlobMatch:
    """Tests for glob_match."""

    @pytest.mark.parametrize("pattern,name", [
        ("web*", "web-debug"),
        ("w?b", "web"),
        ("[a-w]eb", "web"),
        ("[^d]b", "ab"),
        ("web\\*", "web*"),
        ("*/debug", "web/debug"),
    ])
    def test_matches(self, pattern, name):
        assert glob_match(pattern, name)

    @pytest.mark.parametrize("pattern,name", [
        ("web*", "web/debug"),
        ("web?debug", "web/debug"),
        ("web", "web-debug"),
        ("[^w]eb", "web"),
        ("web[", "web["),
        ("[]", "]"),
        ("web\\", "web\\"),
    ])
    def test_does_not_match(self, pattern, name):
        assert not glob_match(pattern, name)

    def test_star_stops_at_slash_in_selection(self):
        assert included_or_excluded("web/debug", ["web*"]) == (SelectState.UNKNOWN, "")
