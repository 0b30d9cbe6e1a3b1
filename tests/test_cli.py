"""Tests for the todoshare command line."""

import unittest
from unittest.mock import MagicMock, patch

from ck_fixtures import todo_record
from typer.testing import CliRunner

from todoshare.cli.main import app
from todoshare.exceptions import TodosApiError
from todoshare.services.todos import Error, Loaded, Share, ToDo
from todoshare.services.todos.models.cloudkit import CKRecord

runner = CliRunner()


class TodosCommandsTest(unittest.TestCase):
    def setUp(self):
        self.todo = ToDo.parse(todo_record("A1", "Buy milk"))
        self.service = MagicMock()
        self.service.refresh.return_value = Loaded(private=[self.todo], shared=[])
        patcher = patch(
            "todoshare.cli.commands.todos.auth.get_service", return_value=self.service
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_list(self):
        result = runner.invoke(app, ["todos", "list"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Buy milk", result.output)
        self.service.initialize.assert_called_once()

    def test_list_error_state_exits(self):
        self.service.refresh.return_value = Error(TodosApiError("HTTP 500"))
        result = runner.invoke(app, ["todos", "list"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("HTTP 500", result.output)

    def test_add(self):
        self.service.add_item.return_value = self.todo
        result = runner.invoke(app, ["todos", "add", "Buy milk"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.service.add_item.assert_called_once_with("Buy milk")

    def test_check(self):
        result = runner.invoke(app, ["todos", "check", "A1"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.service.mark_as_checked.assert_called_once_with(self.todo)

    def test_check_unknown_id(self):
        result = runner.invoke(app, ["todos", "check", "nope"])
        self.assertEqual(result.exit_code, 1)
        self.service.mark_as_checked.assert_not_called()

    def test_share(self):
        share_record = CKRecord.model_validate(
            {
                "recordName": "SHARE-1",
                "recordType": "cloudkit.share",
                "fields": {
                    "cloudkit.title": {"type": "STRING", "value": "ToDo: Buy milk"}
                },
            }
        )
        container = MagicMock(container_id="iCloud.com.example.todoshare")
        self.service.fetch_or_create_share.return_value = (
            Share.from_record(share_record, root_record_id="A1"),
            container,
        )
        result = runner.invoke(app, ["todos", "share", "A1"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("SHARE-1", result.output)


if __name__ == "__main__":
    unittest.main()
