"""Command line interface against a seeded database."""

import json

from staff_pay_engine.cli import StaffPayCli

from .conftest import ELIGIBLE_IDS


class TestStaffPayCli:
    """Test CLI commands end to end."""

    def test_no_command_prints_help(self, capsys):
        assert StaffPayCli().run([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_init_db_with_seed(self, tmp_path, capsys):
        url = f"sqlite:///{tmp_path / 'cli.db'}"

        assert StaffPayCli().run(["--database-url", url, "init-db", "--seed"]) == 0
        assert "work_log: 5" in capsys.readouterr().out

        assert StaffPayCli().run(["--database-url", url, "status"]) == 0
        assert json.loads(capsys.readouterr().out)["unpaid_tasks"] == len(ELIGIBLE_IDS)

    def test_preview_text_summary(self, seeded_db, capsys):
        assert StaffPayCli(seeded_db).run(["preview", "--text"]) == 0

        out = capsys.readouterr().out
        assert "Nguyen Van A:" in out
        assert "Grand Total: 380,000 VND" in out

    def test_preview_then_commit_with_handle_file(self, seeded_db, tmp_path, capsys):
        handle_file = tmp_path / "handle.json"
        cli = StaffPayCli(seeded_db)

        assert cli.run(["preview", "--item-id", "3", "--handle-file", str(handle_file)]) == 0
        capsys.readouterr()
        assert cli.run(["commit", "--handle-file", str(handle_file)]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["outcome"] == "invoiced"
        assert result["claimed_item_ids"] == [3]

    def test_invoices_latest(self, seeded_db, capsys):
        cli = StaffPayCli(seeded_db)
        assert cli.run(["invoices", "--latest"]) == 1
        capsys.readouterr()

        cli.run(["commit"])
        number = json.loads(capsys.readouterr().out)["invoice_batch"]["invoice_number"]

        assert cli.run(["invoices", "--latest"]) == 0
        lines = json.loads(capsys.readouterr().out)
        assert {line["invoice_number"] for line in lines} == {number}

    def test_configuration_error_exit_code(self, session_factory, capsys):
        assert StaffPayCli(session_factory).run(["preview"]) == 2
        assert "Configuration error" in capsys.readouterr().err
