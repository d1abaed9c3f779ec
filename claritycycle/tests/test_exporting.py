from __future__ import annotations

import csv
from datetime import datetime, timedelta, timezone
import unittest

from claritycycle.db import ClarityDB
from claritycycle.exporting import SESSION_COLUMNS, TASK_COLUMNS, export_user_csv
from claritycycle.tests.test_helpers import local_tmp_dir

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class TestExport(unittest.TestCase):
    def test_export_user_csv(self) -> None:
        with local_tmp_dir() as tmp:
            db = ClarityDB(tmp / "data" / "clarity.sqlite")
            alice = db.create_user("alice", "alice@example.com", "hash", now=T0).id
            bob = db.create_user("bob", "bob@example.com", "hash", now=T0).id
            task = db.create_task(alice, "写周报", tags="a,b", now=T0)
            db.create_task(bob, "not alice's", now=T0)
            session = db.create_session(alice, 25, task_id=task.id, now=T0)
            db.complete_session(alice, session.id, now=T0 + timedelta(minutes=25))

            tasks_path, sessions_path = export_user_csv(db=db, user_id=alice, out_dir=tmp / "out")

            with tasks_path.open("r", encoding="utf-8", newline="") as f:
                rows = list(csv.reader(f))
            self.assertEqual(rows[0], TASK_COLUMNS)
            self.assertEqual(len(rows), 2)
            self.assertEqual(rows[1][1], "写周报")
            self.assertEqual(rows[1][8], "a,b")

            with sessions_path.open("r", encoding="utf-8", newline="") as f:
                rows = list(csv.reader(f))
            self.assertEqual(rows[0], SESSION_COLUMNS)
            self.assertEqual(rows[1][1], str(task.id))
            self.assertEqual(rows[1][5], "1")
            self.assertEqual(rows[1][3], T0.isoformat())


if __name__ == "__main__":
    unittest.main()
