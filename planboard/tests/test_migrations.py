import json
import unittest

from planboard.board import default_board
from planboard.migrations import load_session, migrate_board, migrate_session, serialize_session
from planboard.models import BoardState

_LEGACY_DEPARTMENTS = {
    "departments": [
        {"id": "dev", "name": "IT Devs", "color": "department-dev"},
        {"id": "qa", "name": "People Ops", "color": "department-qa"},
    ],
    "sprints": [{"id": 1, "name": "Sprint 1"}, {"id": 2, "name": "Sprint 2"}],
    "features": [
        {"id": 1, "title": "Login", "dept": "dev", "sprint": 1, "assignee": "Sarah", "description": ""},
        {"id": 2, "title": "Tests", "dept": "qa", "sprint": 2, "assignee": "Tom"},
    ],
    "dependencies": [{"from": 1, "to": 2}],
    "nextFeatureId": 3,
}

_V1_BOARD = {
    "teams": [{"id": "dev", "name": "IT Devs", "color": "team-dev"}],
    "sprints": [{"id": 1, "name": "Sprint 1"}],
    "features": [{"id": 4, "title": "Login", "team": "dev", "sprint": 1, "assignee": "Sarah", "description": "x"}],
    "dependencies": [{"from": 4, "to": 4, "relationship": "blocks", "additionalInfo": "why"}],
    "nextFeatureId": 5,
}


class BoardMigrationTests(unittest.TestCase):
    def test_current_board_is_unchanged(self) -> None:
        current = default_board().model_dump()
        migrated = migrate_board(current)
        self.assertEqual(json.dumps(migrated), json.dumps(current))
        self.assertIsNot(migrated, current)

    def test_legacy_departments_are_upgraded(self) -> None:
        migrated = migrate_board(_LEGACY_DEPARTMENTS)

        self.assertEqual(migrated["schemaVersion"], 2)
        self.assertNotIn("departments", migrated)
        self.assertEqual(
            migrated["teams"],
            [
                {"id": "dev", "name": "IT Devs", "colorClass": "team-dev"},
                {"id": "qa", "name": "People Ops", "colorClass": "team-qa"},
            ],
        )
        self.assertEqual(migrated["features"][0]["teamId"], "dev")
        self.assertEqual(migrated["features"][1]["sprintId"], 2)
        self.assertNotIn("dept", migrated["features"][0])
        self.assertEqual(
            migrated["dependencies"],
            [{"fromFeatureId": 1, "toFeatureId": 2, "relationship": "depends on", "note": ""}],
        )
        board = BoardState.model_validate(migrated)
        self.assertEqual(board.features[1].assignee, "Tom")

    def test_legacy_migration_is_idempotent(self) -> None:
        once = migrate_board(_LEGACY_DEPARTMENTS)
        twice = migrate_board(once)
        self.assertEqual(json.dumps(once), json.dumps(twice))
        self.assertIn("departments", _LEGACY_DEPARTMENTS)

    def test_v1_field_names_are_renamed_in_place(self) -> None:
        migrated = migrate_board(_V1_BOARD)
        self.assertEqual(list(migrated["features"][0]), ["id", "title", "teamId", "sprintId", "assignee", "description"])
        self.assertEqual(
            migrated["dependencies"][0],
            {"fromFeatureId": 4, "toFeatureId": 4, "relationship": "blocks", "note": "why"},
        )
        self.assertEqual(migrated["teams"][0]["colorClass"], "team-dev")
        self.assertEqual(json.dumps(migrate_board(migrated)), json.dumps(migrated))

    def test_missing_or_stale_counter_is_recomputed(self) -> None:
        legacy = {"teams": [], "sprints": [], "features": [{"id": 9, "title": "A", "team": "x", "sprint": 1}]}
        self.assertEqual(migrate_board(legacy)["nextFeatureId"], 10)
        stale = dict(_V1_BOARD, nextFeatureId=2)
        self.assertEqual(migrate_board(stale)["nextFeatureId"], 5)

    def test_non_object_board_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            migrate_board(["not", "a", "board"])


class SessionMigrationTests(unittest.TestCase):
    def test_legacy_session_keys_and_participant_set(self) -> None:
        raw = {
            "code": "ab12cd",
            "created": "2025-01-01T00:00:00.000Z",
            "users": [],
            "activeUsers": ["sock-1", "sock-2", "sock-1"],
            "boardData": _LEGACY_DEPARTMENTS,
        }
        record = migrate_session(raw)

        self.assertEqual(record["accessCode"], "AB12CD")
        self.assertEqual(record["createdAt"], "2025-01-01T00:00:00.000Z")
        self.assertEqual(record["participants"], {"sock-1", "sock-2"})
        self.assertNotIn("users", record)
        self.assertIn("teams", record["boardState"])

    def test_missing_participants_become_empty_set(self) -> None:
        record = migrate_session({"accessCode": "QWERTY", "createdAt": "", "boardState": {}})
        self.assertEqual(record["participants"], set())

    def test_serialize_round_trip(self) -> None:
        session = load_session(
            "s-1",
            {"accessCode": "QWERTY", "createdAt": "now", "boardState": _V1_BOARD, "participants": ["b", "a"]},
        )
        self.assertEqual(session.participants, {"a", "b"})
        self.assertEqual(session.boardState.features[0].teamId, "dev")

        stored = serialize_session(session)
        self.assertEqual(stored["participants"], ["a", "b"])
        self.assertEqual(load_session("s-1", stored), session)


if __name__ == "__main__":
    unittest.main()
