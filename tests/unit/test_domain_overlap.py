"""Unit tests for conflict resolution between territories."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from shapely.errors import GEOSException

from builders import EPOCH, ORIGIN, FakeClock, SequentialIds, build_territory, planar_polygon, square_corners
from conquest.domain import geometry
from conquest.domain import overlap as overlap_module
from conquest.domain.enums import SelfOverlapPolicy
from conquest.domain.models import Clipped, Destroyed, Untouched
from conquest.domain.overlap import order_candidates, resolve_overlaps
from conquest.domain.rules_config import DEFAULT_RULES, OverlapRules, RulesConfig


# 3 km square with extra vertices along its south edge
LARGE_RIVAL_CORNERS = [(0, 0), (1000, 0), (2000, 0), (3000, 0), (3000, 3000), (0, 3000)]


def _resolve(new, candidates, **kwargs):
    kwargs.setdefault("clock", FakeClock(EPOCH + timedelta(hours=1)))
    kwargs.setdefault("id_factory", SequentialIds("inv"))
    return resolve_overlaps(new, candidates, **kwargs)


class TestRivalConflicts:
    """Outcomes for territories of other owners."""

    def test_partial_overlap_clips_the_rival(self):
        """A 30 % overlap leaves a 70 m² survivor."""
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(7, 0, 10), claimed_at=EPOCH + timedelta(hours=1))

        resolution = _resolve(new, [rival], invader_username="Bob")

        assert resolution.deleted_territory_ids == ()
        assert len(resolution.modified_territories) == 1
        survivor = resolution.modified_territories[0]
        assert survivor.id == "a"
        assert survivor.owner_id == "alice"
        assert survivor.area == pytest.approx(70.0, rel=1e-2)

        (invasion,) = resolution.invasions
        assert invasion.id == "inv-1"
        assert invasion.overlap_area == pytest.approx(30.0, rel=1e-2)
        assert invasion.territory_was_destroyed is False
        assert invasion.resulting_territory_id == "a"
        assert invasion.invader_username == "Bob"
        assert invasion.invaded_user_id == "alice"
        assert invasion.invader_user_id == "bob"
        assert resolution.total_conquered_area == pytest.approx(30.0, rel=1e-2)
        assert resolution.has_conquests

    def test_survivor_does_not_overlap_the_new_territory(self):
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(7, 0, 10))
        survivor = _resolve(new, [rival]).modified_territories[0]
        shared = geometry.compute_intersection(planar_polygon(survivor), planar_polygon(new))
        assert geometry.area_of(shared) < DEFAULT_RULES.overlap.overlap_epsilon_m2

    def test_clip_appends_a_claim_event(self):
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(7, 0, 10))
        clock = FakeClock(EPOCH + timedelta(hours=2))

        survivor = _resolve(new, [rival], clock=clock).modified_territories[0]

        assert len(survivor.history) == 2
        assert survivor.history[0] == rival.history[0]
        event = survivor.history[-1]
        assert event.claimed_by == "bob"
        assert event.previous_owner_id == "alice"
        assert event.claimed_at == clock.now
        assert event.activity_id == new.activity_id
        assert len(rival.history) == 1

    def test_full_containment_destroys(self):
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(-5, -5, 20))

        resolution = _resolve(new, [rival])

        assert resolution.deleted_territory_ids == ("a",)
        assert resolution.modified_territories == ()
        (invasion,) = resolution.invasions
        assert invasion.territory_was_destroyed is True
        assert invasion.resulting_territory_id is None
        assert invasion.overlap_area == pytest.approx(rival.area)
        assert resolution.outcomes == (Destroyed(territory_id="a", overlap_area=rival.area),)

    def test_overlap_above_destruction_threshold_destroys(self):
        """96 % coverage counts as destruction even though a sliver is left."""
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(0.4, -1, 12))
        resolution = _resolve(new, [rival])
        assert resolution.deleted_territory_ids == ("a",)

    def test_remainder_below_minimum_area_destroys(self):
        """92 % coverage leaves an 8 m² strip, smaller than any valid territory."""
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(0.8, -1, 12))

        resolution = _resolve(new, [rival])

        assert resolution.deleted_territory_ids == ("a",)
        assert isinstance(resolution.outcomes[0], Destroyed)
        assert resolution.invasions[0].territory_was_destroyed

    def test_small_bite_from_large_territory_only_shrinks_it(self):
        """A 50 m² notch on the south edge of a 9 km² rival removes about 50 m²."""
        rival = build_territory("a", "alice", LARGE_RIVAL_CORNERS)
        new = build_territory("n", "bob", square_corners(1495, -5, 10))

        resolution = _resolve(new, [rival])

        (invasion,) = resolution.invasions
        survivor = resolution.modified_territories[0]
        assert invasion.overlap_area == pytest.approx(50.0, rel=1e-2)
        assert survivor.area < rival.area
        assert rival.area - survivor.area == pytest.approx(50.0, abs=1.0)

    def test_tiny_overlap_is_untouched(self):
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(9.95, 0, 10))

        resolution = _resolve(new, [rival])

        assert resolution.outcomes == (Untouched(territory_id="a"),)
        assert resolution.invasions == ()
        assert resolution.total_conquered_area == 0.0
        assert not resolution.has_conquests

    def test_disjoint_candidate_is_untouched(self):
        rival = build_territory("a", "alice", square_corners(100, 100, 10))
        new = build_territory("n", "bob", square_corners(0, 0, 10))
        assert _resolve(new, [rival]).outcomes == (Untouched(territory_id="a"),)

    def test_split_rival_keeps_largest_piece(self):
        """A bar through a rival leaves two pieces; only the bigger survives."""
        rival = build_territory("a", "alice", square_corners(0, 0, 30))
        new = build_territory("n", "bob", [(5, -5), (15, -5), (15, 35), (5, 35)])

        survivor = _resolve(new, [rival]).modified_territories[0]

        assert survivor.area == pytest.approx(450.0, rel=1e-2)
        center_x, _ = ORIGIN.forward(survivor.center.lng, survivor.center.lat)
        assert center_x > 15

    def test_new_territory_inside_rival_leaves_a_hole(self):
        rival = build_territory("a", "alice", square_corners(0, 0, 30))
        new = build_territory("n", "bob", square_corners(10, 10, 5))

        survivor = _resolve(new, [rival]).modified_territories[0]

        assert len(survivor.holes) == 1
        assert survivor.area == pytest.approx(875.0, rel=1e-2)

    def test_new_territory_is_unchanged(self):
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(7, 0, 10))
        assert _resolve(new, [rival]).new_territory == new


class TestOwnTerritories:
    """Same-owner overlaps never produce invasions."""

    def test_ignored_by_default(self):
        own = build_territory("o", "bob", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(5, 0, 10))

        resolution = _resolve(new, [own])

        assert resolution.invasions == ()
        assert resolution.deleted_territory_ids == ()
        assert resolution.modified_territories == ()
        assert resolution.new_territory == new

    def test_merge_policy_absorbs_overlapping_own_territory(self):
        rules = RulesConfig(overlap=OverlapRules(self_overlap=SelfOverlapPolicy.MERGE))
        own = build_territory("o", "bob", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(5, 0, 10))

        resolution = _resolve(new, [own], rules=rules)

        assert resolution.absorbed_territory_ids == ("o",)
        assert resolution.deleted_territory_ids == ("o",)
        assert resolution.invasions == ()
        assert resolution.new_territory.id == "n"
        assert resolution.new_territory.area == pytest.approx(150.0, rel=1e-2)

    def test_merge_policy_leaves_distant_own_territory(self):
        rules = RulesConfig(overlap=OverlapRules(self_overlap=SelfOverlapPolicy.MERGE))
        own = build_territory("o", "bob", square_corners(50, 50, 10))
        new = build_territory("n", "bob", square_corners(0, 0, 10))

        resolution = _resolve(new, [own], rules=rules)

        assert resolution.absorbed_territory_ids == ()
        assert resolution.new_territory == new


class TestResolutionEdgeCases:
    def test_no_candidates(self):
        new = build_territory("n", "bob", square_corners(0, 0, 10))
        resolution = _resolve(new, [])
        assert resolution.new_territory == new
        assert resolution.outcomes == ()
        assert resolution.total_conquered_area == 0.0

    def test_candidate_with_same_id_is_ignored(self):
        new = build_territory("n", "bob", square_corners(0, 0, 10))
        assert _resolve(new, [new]).outcomes == ()

    def test_malformed_candidate_is_skipped(self, caplog):
        broken = build_territory("bad", "alice", square_corners(0, 0, 10))
        broken = replace(broken, ring=geometry.close_ring(ORIGIN.inverse_ring([(0, 0), (10, 10), (10, 0), (0, 10)])))
        healthy = build_territory("good", "carol", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(7, 0, 10))

        with caplog.at_level("WARNING"):
            resolution = _resolve(new, [broken, healthy])

        assert resolution.skipped_territory_ids == ("bad",)
        assert [i.invaded_territory_id for i in resolution.invasions] == ["good"]
        assert "malformed" in caplog.text

    def test_topology_failure_skips_only_that_candidate(self, monkeypatch):
        failing = build_territory("bad", "alice", square_corners(0, 0, 10))
        healthy = build_territory("good", "carol", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(7, 0, 10))
        calls = []

        def intersection_failing_once(first, second):
            calls.append(first)
            if len(calls) == 1:
                raise GEOSException("TopologyException: side location conflict")
            return geometry.compute_intersection(first, second)

        monkeypatch.setattr(overlap_module, "compute_intersection", intersection_failing_once)
        resolution = _resolve(new, [failing, healthy])

        assert resolution.skipped_territory_ids == ("bad",)
        assert [i.invaded_territory_id for i in resolution.invasions] == ["good"]

    def test_malformed_new_territory_resolves_nothing(self, caplog):
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = replace(build_territory("n", "bob", square_corners(0, 0, 10)), ring=())

        with caplog.at_level("WARNING"):
            resolution = _resolve(new, [rival])

        assert resolution.invasions == ()
        assert resolution.outcomes == ()

    def test_candidates_processed_oldest_first(self):
        younger = build_territory("b", "alice", square_corners(0, 0, 10), claimed_at=EPOCH + timedelta(minutes=5))
        older = build_territory("z", "carol", square_corners(0, 5, 10), claimed_at=EPOCH)
        new = build_territory("n", "bob", square_corners(7, 0, 10))

        resolution = _resolve(new, [younger, older])

        assert [i.invaded_territory_id for i in resolution.invasions] == ["z", "b"]
        assert [i.id for i in resolution.invasions] == ["inv-1", "inv-2"]

    def test_order_candidates_breaks_ties_by_id(self):
        b = build_territory("b", "alice", square_corners(0, 0, 10))
        a = build_territory("a", "alice", square_corners(0, 0, 10))
        assert [t.id for t in order_candidates([b, a])] == ["a", "b"]

    def test_repeated_runs_are_identical(self):
        rivals = [
            build_territory("a", "alice", square_corners(0, 0, 10)),
            build_territory("c", "carol", square_corners(14, 0, 10)),
        ]
        new = build_territory("n", "bob", square_corners(7, 0, 10))
        assert _resolve(new, rivals) == _resolve(new, list(reversed(rivals)))

    def test_total_is_sum_of_invasion_overlaps(self):
        rivals = [
            build_territory("a", "alice", square_corners(0, 0, 10)),
            build_territory("c", "carol", square_corners(14, 0, 10)),
        ]
        new = build_territory("n", "bob", square_corners(7, 0, 10))
        resolution = _resolve(new, rivals)
        assert resolution.total_conquered_area == pytest.approx(
            sum(i.overlap_area for i in resolution.invasions)
        )
        assert resolution.total_conquered_area == pytest.approx(60.0, rel=1e-2)


class TestResolutionProperties:
    @settings(max_examples=40, deadline=None)
    @given(
        st.floats(min_value=-15.0, max_value=15.0),
        st.floats(min_value=-15.0, max_value=15.0),
        st.floats(min_value=5.0, max_value=25.0),
    )
    def test_survivors_never_overlap_the_conqueror(self, x, y, side):
        """Every rival is destroyed, reduced to a disjoint remainder, or barely touched."""
        rival = build_territory("a", "alice", square_corners(0, 0, 10))
        new = build_territory("n", "bob", square_corners(x, y, side))

        resolution = _resolve(new, [rival])

        assert len(resolution.outcomes) == 1
        outcome = resolution.outcomes[0]
        if isinstance(outcome, Clipped):
            survivor = resolution.modified_territories[0]
            assert survivor.area <= rival.area + 1e-6
            assert survivor.area >= DEFAULT_RULES.territory.min_area_m2
            shared = geometry.compute_intersection(planar_polygon(survivor), planar_polygon(new))
            assert geometry.area_of(shared) < DEFAULT_RULES.overlap.overlap_epsilon_m2
        elif isinstance(outcome, Destroyed):
            assert resolution.deleted_territory_ids == ("a",)
        else:
            assert resolution.invasions == ()
