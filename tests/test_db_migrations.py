import os
import sqlite3
import unittest

from pharmamarket import create_app
from pharmamarket.config import Config
from pharmamarket.db import close_db
from pharmamarket.db_migrations import to_sqlalchemy_url
from tests.helpers.temp_db import TempDbSandbox


def _table_exists(db_path: str, table_name: str) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        ).fetchone()
        return row is not None
    finally:
        conn.close()


class DbMigrationsTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="migrations")
        self.db_path = self._temp_db.db_path
        self._prev_env = os.environ.get("FLASK_ENV")
        os.environ["FLASK_ENV"] = "development"

    def tearDown(self) -> None:
        if self._prev_env is None:
            os.environ.pop("FLASK_ENV", None)
        else:
            os.environ["FLASK_ENV"] = self._prev_env
        self._temp_db.cleanup()

    def _build_app(self, *, testing: bool, db_auto_init: bool):
        TempConfig = self._temp_db.make_config(Config, TESTING=testing, DB_AUTO_INIT=db_auto_init)
        return create_app(TempConfig)

    def test_schema_not_created_by_default(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        with app.app_context():
            close_db()

        self.assertFalse(_table_exists(self.db_path, "tenders"))

    def test_schema_created_with_explicit_dev_flag(self) -> None:
        app = self._build_app(testing=False, db_auto_init=True)
        with app.app_context():
            close_db()

        for table in ("offers", "offer_line_items", "tenders", "tender_responses", "orders", "order_lines"):
            self.assertTrue(_table_exists(self.db_path, table), table)

    def test_flask_db_upgrade_and_downgrade(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        runner = app.test_cli_runner()

        upgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(upgrade_result.exit_code, 0, msg=upgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "tenders"))
        self.assertTrue(_table_exists(self.db_path, "tender_response_items"))

        downgrade_result = runner.invoke(args=["db", "downgrade", "base"])
        self.assertEqual(downgrade_result.exit_code, 0, msg=downgrade_result.output)
        self.assertFalse(_table_exists(self.db_path, "tenders"))

        reupgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(reupgrade_result.exit_code, 0, msg=reupgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "tenders"))

    def test_sqlalchemy_url_normalization(self) -> None:
        self.assertEqual(to_sqlalchemy_url("postgres://u:p@db/market"), "postgresql://u:p@db/market")
        self.assertTrue(to_sqlalchemy_url(self.db_path).startswith("sqlite:///"))
        with self.assertRaises(RuntimeError):
            to_sqlalchemy_url("  ")


if __name__ == "__main__":
    unittest.main()
