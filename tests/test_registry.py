#!/usr/bin/env python3

from __future__ import annotations

import random
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from aroundu.core.errors import (
    DeniedError,
    DuplicateParticipantError,
    InvalidInputError,
    NotFoundError,
)
from aroundu.core.geo import distance_meters
from aroundu.core.personas import AgentCatalog
from aroundu.core.types import ParticipantStatus, RoomKind
from aroundu.models.participant_model import ProfileUpdate
from aroundu.models.persona_model import Persona
from aroundu.runtime_state import PresenceRegistry


class RegistryTestBase(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = PresenceRegistry(AgentCatalog(), rng=random.Random(1))

    def tearDown(self) -> None:
        self.assertEqual(self.registry.check_invariants(), [])

    def add(self, conn_id: str, *, gender=None, interest=None, location=None):
        self.registry.create_participant(conn_id)
        if gender is not None or interest is not None:
            self.registry.update_profile(
                conn_id, ProfileUpdate(gender_tag=gender, interest_tag=interest)
            )
        if location is not None:
            self.registry.register_location(conn_id, *location)
        return self.registry.get_participant(conn_id)


class GeoTests(unittest.TestCase):
    def test_zero_distance(self) -> None:
        self.assertEqual(distance_meters(10.0, 10.0, 10.0, 10.0), 0.0)

    def test_small_offset_is_about_157_meters(self) -> None:
        d = distance_meters(10.0, 10.0, 10.001, 10.001)
        self.assertAlmostEqual(d, 157, delta=3)

    def test_symmetric(self) -> None:
        a = distance_meters(60.17, 24.94, 59.33, 18.06)
        b = distance_meters(59.33, 18.06, 60.17, 24.94)
        self.assertAlmostEqual(a, b, places=6)
        self.assertAlmostEqual(a / 1000, 396, delta=5)


class ParticipantLifecycleTests(RegistryTestBase):
    def test_create_participant_defaults(self) -> None:
        p = self.registry.create_participant("a")
        self.assertEqual(p.status, ParticipantStatus.AVAILABLE)
        self.assertIsNone(p.room_id)
        self.assertIsNone(p.location)
        self.assertTrue(1 <= p.avatar_token <= 10)
        self.assertEqual(len(p.display_name.split(" ")), 2)

    def test_duplicate_connection_is_rejected(self) -> None:
        self.registry.create_participant("a")
        with self.assertRaises(DuplicateParticipantError):
            self.registry.create_participant("a")

    def test_snapshots_are_not_live_records(self) -> None:
        p = self.registry.create_participant("a")
        p.display_name = "Mutated"
        p.status = ParticipantStatus.BUSY
        fresh = self.registry.get_participant("a")
        self.assertNotEqual(fresh.display_name, "Mutated")
        self.assertEqual(fresh.status, ParticipantStatus.AVAILABLE)

    def test_register_location_validation(self) -> None:
        self.registry.create_participant("a")
        with self.assertRaises(NotFoundError):
            self.registry.register_location("ghost", 1.0, 1.0, 100)
        with self.assertRaises(InvalidInputError):
            self.registry.register_location("a", 1.0, None, 100)
        with self.assertRaises(InvalidInputError):
            self.registry.register_location("a", 1.0, 1.0, 0)
        with self.assertRaises(InvalidInputError):
            self.registry.register_location("a", 95.0, 1.0, 100)
        with self.assertRaises(InvalidInputError):
            self.registry.register_location("a", float("nan"), 1.0, 100)
        self.assertIsNone(self.registry.get_participant("a").location)

    def test_zero_coordinates_are_valid(self) -> None:
        self.registry.create_participant("a")
        p, left = self.registry.register_location("a", 0.0, 0.0, 250)
        self.assertIsNone(left)
        self.assertEqual((p.location.lat, p.location.lon, p.location.radius), (0.0, 0.0, 250.0))

    def test_update_profile_applies_only_present_fields(self) -> None:
        self.registry.create_participant("a")
        original_name = self.registry.get_participant("a").display_name

        p = self.registry.update_profile("a", ProfileUpdate(gender_tag="female"))
        self.assertEqual(p.gender_tag, "FEMALE")
        self.assertEqual(p.display_name, original_name)

        p = self.registry.update_profile("a", ProfileUpdate(display_name="Night Owl", interest_tag="any"))
        self.assertEqual(p.display_name, "Night Owl")
        self.assertEqual(p.interest_tag, "ANY")
        self.assertEqual(p.gender_tag, "FEMALE")

        with self.assertRaises(NotFoundError):
            self.registry.update_profile("ghost", ProfileUpdate(display_name="x"))

    def test_register_location_while_busy_frees_both_sides(self) -> None:
        self.add("a", interest="ANY")
        self.add("b", interest="ANY")
        room = self.registry.allocate_room("a", "b")

        p, left = self.registry.register_location("a", 10.0, 10.0, 500)
        self.assertEqual(p.status, ParticipantStatus.AVAILABLE)
        self.assertEqual(left.room_id, room.id)
        self.assertEqual(left.remaining.id, "b")
        self.assertIsNone(p.room_id)
        self.assertIsNone(self.registry.get_room(room.id))
        self.assertTrue(self.registry.get_participant("b").is_available)


class NearbyTests(RegistryTestBase):
    def test_scenario_peer_about_157_meters_away(self) -> None:
        self.add("a", location=(10.0, 10.0, 500))
        self.add("b", location=(10.001, 10.001, 500))

        nearby = self.registry.find_nearby("a")
        peers = [e for e in nearby if not e.is_agent]
        self.assertEqual([e.id for e in peers], ["b"])
        self.assertAlmostEqual(peers[0].distance_meters, 157, delta=3)

    def test_filters_and_ordering(self) -> None:
        self.add("me", location=(10.0, 10.0, 1000))
        self.add("near", location=(10.0005, 10.0, 10))      # ~56 m, tiny own radius
        self.add("mid", location=(10.003, 10.0, 5000))      # ~334 m
        self.add("far", location=(10.05, 10.0, 50000))      # ~5.5 km
        self.add("nowhere")
        self.add("busy1", interest="ANY", location=(10.0001, 10.0, 1000))
        self.add("busy2", interest="ANY", location=(10.0001, 10.0, 1000))
        self.registry.allocate_room("busy1", "busy2")

        nearby = self.registry.find_nearby("me")
        ids = [e.id for e in nearby]

        self.assertNotIn("me", ids)
        self.assertNotIn("far", ids)
        self.assertNotIn("nowhere", ids)
        self.assertNotIn("busy1", ids)
        self.assertNotIn("busy2", ids)
        # Only the caller's radius counts.
        self.assertIn("near", ids)
        self.assertIn("mid", ids)

        distances = [e.distance_meters for e in nearby]
        self.assertEqual(distances, sorted(distances))
        for e in nearby:
            if not e.is_agent:
                self.assertLessEqual(e.distance_meters, 1000)

    def test_agents_always_listed_at_synthetic_distances(self) -> None:
        self.add("me", location=(48.85, 2.35, 1))
        nearby = self.registry.find_nearby("me")
        agents = [e for e in nearby if e.is_agent]
        self.assertEqual([e.id for e in agents], ["bot-rohan", "bot-priya", "bot-vikram"])
        self.assertEqual([e.distance_meters for e in agents], [100, 150, 200])

    def test_ties_keep_connection_order(self) -> None:
        self.add("me", location=(0.0, 0.0, 100000))
        self.add("p2", location=(0.0, 0.0, 10))
        self.add("p1", location=(0.0, 0.0, 10))
        nearby = self.registry.find_nearby("me")
        self.assertEqual([e.id for e in nearby[:2]], ["p2", "p1"])
        self.assertTrue(all(e.is_agent for e in nearby[2:]))

    def test_requires_location(self) -> None:
        self.add("me")
        with self.assertRaises(InvalidInputError):
            self.registry.find_nearby("me")
        with self.assertRaises(NotFoundError):
            self.registry.find_nearby("ghost")


class CompatibilityTests(RegistryTestBase):
    def test_wildcards_match_each_other(self) -> None:
        self.add("a", interest="ANY")
        self.add("b", interest="ANY")
        self.assertEqual(self.registry.find_compatible_peer("a").id, "b")
        self.assertEqual(self.registry.find_compatible_peer("b").id, "a")

    def test_concrete_tags_must_match_both_ways(self) -> None:
        self.add("m", gender="MALE", interest="FEMALE")
        self.add("f", gender="FEMALE", interest="MALE")
        self.add("f2", gender="FEMALE", interest="FEMALE")
        for _ in range(20):
            self.assertEqual(self.registry.find_compatible_peer("m").id, "f")

    def test_unset_interest_never_matches(self) -> None:
        self.add("a", gender="MALE")
        self.add("b", gender="FEMALE", interest="ANY")
        self.assertIsNone(self.registry.find_compatible_peer("a"))
        self.assertIsNone(self.registry.find_compatible_peer("b"))

    def test_never_returns_caller_or_busy_candidates(self) -> None:
        self.add("a", interest="ANY")
        self.assertIsNone(self.registry.find_compatible_peer("a"))

        self.add("b", interest="ANY")
        self.add("c", interest="ANY")
        self.registry.allocate_room("b", "c")
        self.assertIsNone(self.registry.find_compatible_peer("a"))

    def test_candidates_are_chosen_among_all_matches(self) -> None:
        self.add("a", interest="ANY")
        for i in range(4):
            self.add(f"p{i}", interest="ANY")
        seen = {self.registry.find_compatible_peer("a").id for _ in range(200)}
        self.assertEqual(seen, {"p0", "p1", "p2", "p3"})


class AgentMatchTests(RegistryTestBase):
    def test_prefers_gender_compatible_persona(self) -> None:
        self.add("a", interest="FEMALE")
        for _ in range(20):
            self.assertEqual(self.registry.find_agent_match("a").id, "bot-priya")

    def test_falls_back_to_whole_catalog(self) -> None:
        self.add("a", interest="NONBINARY")
        self.add("b")
        ids = {self.registry.find_agent_match("a").id for _ in range(100)}
        self.assertEqual(ids, {"bot-rohan", "bot-priya", "bot-vikram"})
        self.assertIsNotNone(self.registry.find_agent_match("b"))

    def test_empty_catalog_returns_none(self) -> None:
        registry = PresenceRegistry(AgentCatalog(personas=[]))
        registry.create_participant("a")
        self.assertIsNone(registry.find_agent_match("a"))

    def test_custom_catalog_of_any_size(self) -> None:
        personas = [
            Persona(id=f"bot-{i}", display_name=f"Bot {i}", avatar_token=1, gender_tag="MALE", persona_prompt="x")
            for i in range(5)
        ]
        catalog = AgentCatalog(personas=personas, base_distance_m=10, step_distance_m=5)
        near = catalog.list_near(1.0, 2.0)
        self.assertEqual([a.distance_meters for a in near], [10, 15, 20, 25, 30])
        self.assertAlmostEqual(near[0].lat, 1.001)
        self.assertAlmostEqual(near[0].lon, 2.001)

    def test_duplicate_persona_ids_rejected(self) -> None:
        p = Persona(id="bot-x", display_name="X", avatar_token=1, gender_tag="MALE", persona_prompt="x")
        with self.assertRaises(ValueError):
            AgentCatalog(personas=[p, p])


class AllocationTests(RegistryTestBase):
    def test_peer_allocation_binds_both(self) -> None:
        self.add("a")
        self.add("b")
        room = self.registry.allocate_room("a", "b")
        self.assertEqual(room.kind, RoomKind.PEER)
        self.assertEqual(sorted(room.peer_ids()), ["a", "b"])
        for pid in ("a", "b"):
            p = self.registry.get_participant(pid)
            self.assertEqual(p.status, ParticipantStatus.BUSY)
            self.assertEqual(p.room_id, room.id)

    def test_agent_allocation_only_binds_the_human(self) -> None:
        self.add("a")
        room = self.registry.allocate_room("a", "bot-priya")
        self.assertEqual(room.kind, RoomKind.AGENT)
        self.assertEqual(room.agent_persona_id(), "bot-priya")
        self.assertEqual(self.registry.get_participant("a").room_id, room.id)

        # Personas have no status: another human can talk to the same one.
        self.add("b")
        other = self.registry.allocate_room("b", "bot-priya")
        self.assertNotEqual(other.id, room.id)

    def test_denied_cases_change_nothing(self) -> None:
        self.add("a")
        self.add("b")
        self.add("c")
        self.registry.allocate_room("a", "b")
        before = self.registry.stats()

        for initiator, target in [
            ("a", "c"),          # initiator busy
            ("c", "b"),          # target busy
            ("c", "ghost"),      # unknown target
            ("ghost", "c"),      # unknown initiator
            ("c", "c"),          # self
        ]:
            with self.assertRaises(DeniedError):
                self.registry.allocate_room(initiator, target)

        self.assertEqual(self.registry.stats(), before)
        self.assertTrue(self.registry.get_participant("c").is_available)

    def test_concurrent_allocations_for_same_target(self) -> None:
        for _ in range(50):
            registry = PresenceRegistry(AgentCatalog())
            for pid in ("a", "b", "c"):
                registry.create_participant(pid)

            barrier = threading.Barrier(2)

            def attempt(initiator: str):
                barrier.wait()
                try:
                    return registry.allocate_room(initiator, "b")
                except DeniedError:
                    return None

            with ThreadPoolExecutor(max_workers=2) as pool:
                results = list(pool.map(attempt, ["a", "c"]))

            granted = [r for r in results if r is not None]
            self.assertEqual(len(granted), 1)
            self.assertEqual(len(registry.list_rooms()), 1)
            self.assertEqual(registry.get_participant("b").room_id, granted[0].id)
            self.assertEqual(registry.check_invariants(), [])


class TeardownTests(RegistryTestBase):
    def test_leave_destroys_room_and_frees_counterpart(self) -> None:
        self.add("a")
        self.add("b")
        room = self.registry.allocate_room("a", "b")

        result = self.registry.leave("a")
        self.assertIsNotNone(result)
        self.assertEqual(result.room_id, room.id)
        self.assertTrue(result.room_destroyed)
        self.assertEqual(result.room_kind, RoomKind.PEER)
        self.assertEqual(result.departing.id, "a")
        self.assertEqual(result.remaining.id, "b")
        self.assertIsNone(self.registry.get_room(room.id))
        for pid in ("a", "b"):
            p = self.registry.get_participant(pid)
            self.assertEqual(p.status, ParticipantStatus.AVAILABLE)
            self.assertIsNone(p.room_id)

        self.assertIsNone(self.registry.leave("a"))
        self.assertIsNone(self.registry.leave("b"))

    def test_leave_agent_room(self) -> None:
        self.add("a")
        self.registry.allocate_room("a", "bot-rohan")
        result = self.registry.leave("a")
        self.assertEqual(result.room_kind, RoomKind.AGENT)
        self.assertIsNone(result.remaining)
        self.assertEqual(result.agent_persona_id, "bot-rohan")
        self.assertEqual(self.registry.list_rooms(), [])

    def test_leave_without_room_or_unknown(self) -> None:
        self.add("a")
        self.assertIsNone(self.registry.leave("a"))
        self.assertIsNone(self.registry.leave("ghost"))

    def test_disconnect_removes_and_frees_counterpart(self) -> None:
        self.add("a")
        self.add("b")
        self.registry.allocate_room("a", "b")

        result = self.registry.disconnect("a")
        self.assertEqual(result.remaining.id, "b")
        self.assertIsNone(self.registry.get_participant("a"))
        self.assertTrue(self.registry.get_participant("b").is_available)
        self.assertEqual([p.id for p in self.registry.list_participants()], ["b"])

        self.assertIsNone(self.registry.disconnect("a"))
        self.assertIsNone(self.registry.disconnect("never-seen"))

    def test_rematch_after_teardown(self) -> None:
        self.add("a", interest="ANY")
        self.add("b", interest="ANY")
        self.registry.allocate_room("a", "b")
        self.registry.leave("b")
        room = self.registry.allocate_room("b", "a")
        self.assertEqual(sorted(room.peer_ids()), ["a", "b"])
        self.assertEqual(self.registry.stats()["rooms"], 1)


if __name__ == "__main__":
    unittest.main()
