import json
import tempfile
import unittest
from pathlib import Path

from planboard.errors import NotFoundError, ValidationError
from planboard.mutations import MUTATION_HANDLERS, MutationProcessor
from planboard.session_store import SessionStore


class MutationProcessorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "sessions.json"
        self.store = SessionStore(self.path)
        self.session_id = self.store.create_session().sessionId
        self.processor = MutationProcessor(self.store)

    async def asyncTearDown(self) -> None:
        self._tmp.cleanup()

    def _board(self):
        return self.store.find_by_id(self.session_id).boardState

    def _persisted_board(self) -> dict:
        return json.loads(self.path.read_text())["sessions"][self.session_id]["boardState"]

    async def test_create_feature_uses_counter_and_persists(self) -> None:
        expected_id = self._board().nextFeatureId
        result = await self.processor.apply(
            self.session_id, "create-feature", {"title": "X", "teamId": "dev", "sprintId": 1}
        )

        self.assertEqual(result.event, "feature-created")
        self.assertTrue(result.include_sender)
        self.assertEqual(result.data["id"], expected_id)
        self.assertEqual(result.data["assignee"], "Unassigned")
        self.assertEqual(result.data["description"], "")
        self.assertEqual(self._persisted_board()["nextFeatureId"], expected_id + 1)

    async def test_create_feature_accepts_legacy_team_and_sprint_keys(self) -> None:
        result = await self.processor.apply(
            self.session_id, "create-feature", {"title": "Old client", "team": "qa", "sprint": 2}
        )
        self.assertEqual((result.data["teamId"], result.data["sprintId"]), ("qa", 2))

    async def test_rejected_mutation_leaves_board_and_snapshot_untouched(self) -> None:
        before = self._board().model_dump()
        snapshot = self.path.read_text()

        with self.assertRaises(ValidationError):
            await self.processor.apply(self.session_id, "create-feature", {"title": "  ", "teamId": "dev", "sprintId": 1})
        with self.assertRaises(ValidationError):
            await self.processor.apply(self.session_id, "create-feature", {"title": "No team"})
        with self.assertRaises(ValidationError):
            await self.processor.apply(self.session_id, "move-feature", "garbage")
        with self.assertRaises(NotFoundError):
            await self.processor.apply(self.session_id, "update-feature", {"id": 999, "title": "Ghost"})

        self.assertEqual(self._board().model_dump(), before)
        self.assertEqual(self.path.read_text(), snapshot)

    async def test_missing_session_and_unknown_kind(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.processor.apply("missing", "create-feature", {"title": "X", "teamId": "dev", "sprintId": 1})
        with self.assertRaises(ValidationError):
            await self.processor.apply(self.session_id, "explode-board", {})

    async def test_update_feature_returns_merged_feature(self) -> None:
        result = await self.processor.apply(self.session_id, "update-feature", {"id": 1, "assignee": "Dana"})
        self.assertEqual(result.event, "feature-updated")
        self.assertEqual(result.data["title"], "User Authentication System")
        self.assertEqual(result.data["assignee"], "Dana")

    async def test_update_feature_with_deleted_flag_deletes(self) -> None:
        result = await self.processor.apply(self.session_id, "update-feature", {"id": 4, "deleted": True})

        self.assertEqual(result.event, "feature-deleted")
        self.assertEqual(result.data, {"featureId": 4})
        board = self._board()
        self.assertNotIn(4, [f.id for f in board.features])
        self.assertFalse(any(4 in (d.fromFeatureId, d.toFeatureId) for d in board.dependencies))

    async def test_move_feature_echoes_request(self) -> None:
        result = await self.processor.apply(
            self.session_id, "move-feature", {"featureId": 7, "teamId": "qa", "sprintId": 3}
        )
        self.assertEqual(result.event, "feature-moved")
        self.assertEqual(result.data, {"featureId": 7, "teamId": "qa", "sprintId": 3})

    async def test_clean_dependency_list_skips_the_sender(self) -> None:
        result = await self.processor.apply(
            self.session_id, "update-dependencies", [{"fromFeatureId": 1, "toFeatureId": 2}]
        )
        self.assertEqual(result.event, "dependencies-updated")
        self.assertFalse(result.include_sender)

    async def test_filtered_dependency_list_goes_back_to_sender(self) -> None:
        result = await self.processor.apply(
            self.session_id,
            "update-dependencies",
            [
                {"from": 1, "to": 2, "relationship": "enables", "additionalInfo": "legacy keys"},
                {"fromFeatureId": 2, "toFeatureId": 1},
                {"fromFeatureId": 3, "toFeatureId": 500},
            ],
        )
        self.assertTrue(result.include_sender)
        self.assertEqual(
            result.data,
            [{"fromFeatureId": 1, "toFeatureId": 2, "relationship": "enables", "note": "legacy keys"}],
        )

    async def test_add_dependency_rejects_reverse_duplicate(self) -> None:
        with self.assertRaises(ValidationError):
            await self.processor.apply(self.session_id, "add-dependency", {"fromFeatureId": 4, "toFeatureId": 1})
        result = await self.processor.apply(self.session_id, "add-dependency", {"fromFeatureId": 3, "toFeatureId": 7})
        self.assertEqual(len(result.data), 6)

    async def test_team_and_sprint_management(self) -> None:
        added = await self.processor.apply(self.session_id, "add-team", {"name": "Data Science"})
        self.assertEqual(added.data, {"id": "data-science", "name": "Data Science", "colorClass": "team-data-science"})

        removed = await self.processor.apply(self.session_id, "remove-team", "dev")
        self.assertEqual(removed.event, "team-removed")
        self.assertEqual(removed.data, "dev")
        self.assertTrue(all(f.teamId != "dev" for f in self._board().features))

        sprint = await self.processor.apply(self.session_id, "add-sprint", {"name": "Sprint 9"})
        self.assertEqual(sprint.data, {"id": 9, "name": "Sprint 9"})

        gone = await self.processor.apply(self.session_id, "remove-sprint", {"sprintId": 4})
        self.assertEqual(gone.data, 4)
        self.assertEqual(self._persisted_board()["sprints"][-1], {"id": 9, "name": "Sprint 9"})
        with self.assertRaises(ValidationError):
            await self.processor.apply(self.session_id, "remove-sprint", {"sprintId": "four"})

    def test_every_inbound_kind_has_a_handler(self) -> None:
        for kind in (
            "update-feature", "create-feature", "move-feature", "update-dependencies",
            "add-team", "remove-team", "add-sprint", "remove-sprint",
        ):
            self.assertIn(kind, MUTATION_HANDLERS)


if __name__ == "__main__":
    unittest.main()
