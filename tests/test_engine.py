"""Tests for the resolution engine (greedy cover and reconciliation)."""

import random

import pytest

from constants import UnresolvedReason
from common.errors import MalformedQuery, RegistryUnavailable
from registry.context import RunContext
from registry.models import Release
from resolution.candidates import rank_candidates
from resolution.engine import InvalidTransition, ResolutionEngine, _Run
from resolution.models import CandidateSet, InstalledModule, ModuleState, ResolutionPolicy


def rel(dist, version, modules, date="2020-01-01"):
    return Release(
        distribution_name=dist,
        version=version,
        release_date=date,
        author="AUTHOR",
        archive_url=f"https://cpan.example.org/authors/id/A/AU/AUTHOR/{dist}-{version}.tar.gz",
        provided_modules=modules,
    )


def csets(modules, releases):
    """Candidate sets built the way the generator ranks them."""
    out = {}
    for module in modules:
        offered = [(r, r.module_version(module.name)) for r in releases if r.ships(module.name)]
        out[module] = CandidateSet(module, candidates=rank_candidates(module.installed_version, offered))
    return out


def resolve(modules, releases, remnants=False, context=None):
    return ResolutionEngine(context).resolve(modules, csets(modules, releases), ResolutionPolicy(remnants=remnants))


def summary(resolution):
    resolved, unresolved, _ = resolution
    return (
        [(r.release.release_name, r.covered_modules) for r in resolved],
        [(u.name, u.reason) for u in unresolved],
    )


def assert_each_module_once(modules, resolution):
    resolved, unresolved, _ = resolution
    names = [m for r in resolved for m in r.covered_modules] + [u.name for u in unresolved]
    assert sorted(names) == sorted(m.name for m in modules)


class TestGreedyCover:
    def test_one_release_explains_two_modules(self):
        modules = [InstalledModule("A", "1.0"), InstalledModule("B", "2.0")]
        releases = [rel("Dist-X", "2.0", {"A": "1.0", "B": "2.0"})]

        result = resolve(modules, releases)

        assert summary(result) == ([("Dist-X-2.0", ["A", "B"])], [])
        assert result.ambiguities == []

    def test_no_history_is_unresolved(self):
        modules = [InstalledModule("C", "3.0")]

        result = resolve(modules, [])

        assert result.resolved == []
        assert len(result.unresolved) == 1
        unresolved = result.unresolved[0]
        assert (unresolved.name, unresolved.version, unresolved.reason) == ("C", "3.0", UnresolvedReason.NO_CANDIDATES)

    def test_missing_candidate_set_counts_as_no_candidates(self):
        module = InstalledModule("C", "3.0")
        result = ResolutionEngine().resolve([module], {})
        assert result.unresolved[0].reason == UnresolvedReason.NO_CANDIDATES

    def test_disjoint_providers_one_release_each(self):
        modules = [InstalledModule(n, "1.0") for n in ("A", "B", "C")]
        releases = [rel(f"Dist-{n}", "1.0", {n: "1.0"}) for n in ("A", "B", "C")]

        result = resolve(modules, releases)

        assert [r.covered_modules for r in result.resolved] == [["A"], ["B"], ["C"]]
        assert result.ambiguities == []

    def test_version_mismatch_not_covered_by_other_release(self):
        modules = [InstalledModule("A", "1.0"), InstalledModule("B", "3.0")]
        releases = [
            rel("Dist-X", "1.0", {"A": "1.0", "B": "2.0"}),
            rel("Dist-B", "3.0", {"B": "3.0"}),
        ]

        result = resolve(modules, releases)

        assert summary(result)[0] == [("Dist-B-3.0", ["B"]), ("Dist-X-1.0", ["A"])]

    def test_skipped_module_is_not_claimed(self):
        a, b = InstalledModule("A", "1.0"), InstalledModule("B", "1.0")
        sets = csets([a, b], [rel("Dist-X", "1.0", {"A": "1.0", "B": "1.0"})])
        sets[a] = CandidateSet(a, skip_reason=UnresolvedReason.IGNORED)

        result = ResolutionEngine().resolve([a, b], sets)

        assert summary(result) == ([("Dist-X-1.0", ["B"])], [("A", UnresolvedReason.IGNORED)])


class TestAmbiguity:
    def test_two_distributions_same_top_tier(self):
        modules = [InstalledModule("M", "1.0")]
        releases = [
            rel("Dist-P", "1.0", {"M": "1.0"}, date="2019-01-01"),
            rel("Dist-Q", "1.0", {"M": "1.0"}, date="2018-01-01"),
        ]

        result = resolve(modules, releases)

        assert len(result.ambiguities) == 1
        ambiguity = result.ambiguities[0]
        assert ambiguity.module == "M"
        assert ambiguity.chosen == "Dist-Q-1.0"
        assert ambiguity.candidates == ("Dist-Q-1.0", "Dist-P-1.0")
        assert summary(result)[0] == [("Dist-Q-1.0", ["M"])]

    def test_releases_of_one_distribution_are_not_ambiguous(self):
        modules = [InstalledModule("M", "1.0")]
        releases = [
            rel("Dist-P", "1.0", {"M": "1.0"}, date="2019-01-01"),
            rel("Dist-P", "1.1", {"M": "1.0"}, date="2020-01-01"),
        ]

        result = resolve(modules, releases)

        assert result.ambiguities == []
        assert summary(result)[0] == [("Dist-P-1.0", ["M"])]


class TestReconcile:
    def remnant_case(self):
        modules = [InstalledModule("D", "1.0"), InstalledModule("E", "2.0")]
        releases = [
            rel("Dist-Y", "1.0", {"D": "1.0", "E": "1.0"}, date="2019-01-01"),
            rel("Dist-Y", "2.0", {"E": "2.0"}, date="2020-01-01"),
        ]
        return modules, releases

    def test_remnant_dropped_without_policy(self):
        modules, releases = self.remnant_case()

        result = resolve(modules, releases, remnants=False)

        assert summary(result) == ([("Dist-Y-2.0", ["E"])], [("D", UnresolvedReason.SUPERSEDED)])
        assert "Dist-Y-2.0" in result.unresolved[0].detail

    def test_remnant_kept_with_policy(self):
        modules, releases = self.remnant_case()

        result = resolve(modules, releases, remnants=True)

        assert summary(result) == ([("Dist-Y-1.0", ["D"]), ("Dist-Y-2.0", ["E"])], [])

    def test_modules_move_to_latest_selected_release(self):
        modules = [InstalledModule("X", "1.0"), InstalledModule("Z", "2.0")]
        releases = [
            rel("Foo", "1.0", {"X": "1.0"}, date="2019-01-01"),
            rel("Foo", "2.0", {"X": "1.0", "Z": "2.0"}, date="2020-01-01"),
        ]

        result = resolve(modules, releases)

        assert summary(result) == ([("Foo-2.0", ["X", "Z"])], [])

    def test_inexact_selection_dropped_without_policy(self):
        modules = [InstalledModule("N", "1.5")]
        releases = [rel("Dist-N", "1.0", {"N": "1.0"}), rel("Dist-N", "2.0", {"N": "2.0"})]

        strict = resolve(modules, releases, remnants=False)
        lenient = resolve(modules, releases, remnants=True)

        assert summary(strict) == ([], [("N", UnresolvedReason.INEXACT)])
        assert summary(lenient) == ([("Dist-N-1.0", ["N"])], [])


class TestLatestRelease:
    """Remnants detected against the distribution's latest published release."""

    old = rel("Dist-Y", "1.0", {"D": "1.0", "E": "1.0"}, date="2019-01-01")
    latest = rel("Dist-Y", "2.0", {"E": "2.0"}, date="2020-01-01")

    def resolve_d(self, remnants):
        modules = [InstalledModule("D", "1.0")]
        return ResolutionEngine().resolve(
            modules,
            csets(modules, [self.old, self.latest]),
            ResolutionPolicy(remnants=remnants),
            {"Dist-Y": self.latest},
        )

    def test_only_remnant_installed_is_dropped(self):
        result = self.resolve_d(remnants=False)

        assert summary(result) == ([], [("D", UnresolvedReason.SUPERSEDED)])
        assert result.unresolved[0].detail == "no longer shipped by Dist-Y-2.0"

    def test_only_remnant_installed_is_kept_with_policy(self):
        result = self.resolve_d(remnants=True)

        assert summary(result) == ([("Dist-Y-1.0", ["D"])], [])

    def test_without_latest_record_selection_stands(self):
        modules = [InstalledModule("D", "1.0")]

        result = ResolutionEngine().resolve(modules, csets(modules, [self.old, self.latest]))

        assert summary(result) == ([("Dist-Y-1.0", ["D"])], [])

    def test_module_still_shipped_at_newer_version_is_kept(self):
        modules = [InstalledModule("E", "1.0")]

        result = ResolutionEngine().resolve(
            modules, csets(modules, [self.old, self.latest]), ResolutionPolicy(), {"Dist-Y": self.latest}
        )

        assert summary(result) == ([("Dist-Y-1.0", ["E"])], [])

    def test_partial_remnant_keeps_release_for_other_modules(self):
        modules = [InstalledModule("D", "1.0"), InstalledModule("E", "1.0")]

        result = ResolutionEngine().resolve(
            modules, csets(modules, [self.old, self.latest]), ResolutionPolicy(), {"Dist-Y": self.latest}
        )

        assert summary(result) == ([("Dist-Y-1.0", ["E"])], [("D", UnresolvedReason.SUPERSEDED)])

    def test_selected_release_that_is_latest_is_untouched(self):
        modules = [InstalledModule("E", "2.0")]

        result = ResolutionEngine().resolve(
            modules, csets(modules, [self.old, self.latest]), ResolutionPolicy(), {"Dist-Y": self.latest}
        )

        assert summary(result) == ([("Dist-Y-2.0", ["E"])], [])


class TestFailures:
    def test_registry_error_recorded_and_counted(self):
        ok, bad = InstalledModule("A", "1.0"), InstalledModule("B", "1.0")
        sets = csets([ok], [rel("Dist-A", "1.0", {"A": "1.0"})])
        sets[bad] = CandidateSet(bad, error=RegistryUnavailable("https://x.test", "timeout", attempts=3))
        context = RunContext()

        result = ResolutionEngine(context).resolve([ok, bad], sets)

        assert summary(result) == ([("Dist-A-1.0", ["A"])], [("B", UnresolvedReason.REGISTRY_ERROR)])
        assert "timeout" in result.unresolved[0].detail
        assert context.error_count == 1

    def test_malformed_query(self):
        bad = InstalledModule("Bad", "1.0")
        sets = {bad: CandidateSet(bad, error=MalformedQuery("module", "Bad"))}
        context = RunContext()

        result = ResolutionEngine(context).resolve([bad], sets)

        assert result.unresolved[0].reason == UnresolvedReason.MALFORMED
        assert context.error_count == 1


class TestInvariants:
    def scenario(self):
        modules = [
            InstalledModule("A", "1.0"),
            InstalledModule("B", "2.0"),
            InstalledModule("C", "3.0"),
            InstalledModule("D", "1.0"),
            InstalledModule("E", "2.0"),
            InstalledModule("M", "1.0"),
            InstalledModule("N", "1.5"),
        ]
        releases = [
            rel("Dist-X", "2.0", {"A": "1.0", "B": "2.0"}),
            rel("Dist-Y", "1.0", {"D": "1.0", "E": "1.0"}, date="2019-01-01"),
            rel("Dist-Y", "2.0", {"E": "2.0"}, date="2020-01-01"),
            rel("Dist-P", "1.0", {"M": "1.0"}, date="2019-01-01"),
            rel("Dist-Q", "1.0", {"M": "1.0"}, date="2018-01-01"),
            rel("Dist-N", "1.0", {"N": "1.0"}),
        ]
        return modules, releases

    @pytest.mark.parametrize("remnants", [False, True])
    def test_every_module_accounted_for_once(self, remnants):
        modules, releases = self.scenario()
        assert_each_module_once(modules, resolve(modules, releases, remnants=remnants))

    def test_deterministic_regardless_of_input_order(self):
        modules, releases = self.scenario()
        expected = resolve(modules, releases)
        shuffled = list(modules)
        random.Random(7).shuffle(shuffled)

        again = resolve(shuffled, list(reversed(releases)))

        assert [r.to_dict() for r in again.resolved] == [r.to_dict() for r in expected.resolved]
        assert again.unresolved == expected.unresolved
        assert again.ambiguities == expected.ambiguities

    def test_resolved_sorted_by_distribution_then_date(self):
        modules, releases = self.scenario()
        resolved = resolve(modules, releases, remnants=True).resolved
        keys = [(r.distribution_name, r.release.release_date) for r in resolved]
        assert keys == sorted(keys)


class TestStateMachine:
    def test_terminal_state_cannot_be_reentered(self):
        module = InstalledModule("A", "1.0")
        run = _Run([module])
        run.unresolve(module, UnresolvedReason.NO_CANDIDATES)

        with pytest.raises(InvalidTransition):
            run.transition(module, ModuleState.COVERED)

    def test_covered_may_become_unresolved(self):
        module = InstalledModule("A", "1.0")
        run = _Run([module])
        run.cover(module, rel("Dist-A", "1.0", {"A": "1.0"}))
        run.unresolve(module, UnresolvedReason.SUPERSEDED)
        assert run.state[module] == ModuleState.UNRESOLVED
        assert module not in run.owner
