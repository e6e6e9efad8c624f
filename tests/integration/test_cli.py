"""Integration tests for the LIME CLI.

Runs main() against real snapshot files and storage paths under tmp_path.
"""

import io

import pytest
from rich.console import Console

from lime import __version__
from lime.cli import create_parser, main
from tests.helpers import ALICE, GROUP


@pytest.fixture(autouse=True)
def cli_output(monkeypatch, tmp_path):
    """Wide, captured console and a config path that does not exist."""
    buffer = io.StringIO()
    monkeypatch.setattr("lime.cli.console", Console(file=buffer, width=300))
    monkeypatch.setattr("lime.config.CONFIG_PATH", tmp_path / "no-config.json")
    return buffer


class TestCreateParser:
    """Tests for argument parser creation."""

    def test_parser_creates_successfully(self):
        assert create_parser().prog == "lime"

    def test_global_options(self, tmp_path):
        args = create_parser().parse_args(
            ["-v", "--db", str(tmp_path / "a.db"), "--store", str(tmp_path / "s.db"), "chats"]
        )
        assert args.verbose is True
        assert args.db == tmp_path / "a.db"
        assert args.store == tmp_path / "s.db"
        assert args.command == "chats"

    def test_export_defaults(self):
        args = create_parser().parse_args(["export", ALICE])
        assert args.chat_id == ALICE
        assert args.format == "txt"
        assert args.all is False
        assert args.output is None

    def test_export_rejects_unknown_format(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["export", "--all", "-f", "json"])

    def test_search_filters(self):
        args = create_parser().parse_args(["search", "--type", "5", "--att", "7", "--chat", ALICE])
        assert args.query == ""
        assert (args.message_type, args.attachment_type, args.chat_id) == (5, 7, ALICE)

    def test_messages_paging(self):
        args = create_parser().parse_args(["messages", ALICE, "-n", "5", "--offset", "10"])
        assert (args.limit, args.offset) == (5, 10)


class TestMain:
    """Tests for the main entry point."""

    def test_version(self, cli_output):
        assert main(["--version"]) == 0
        assert __version__ in cli_output.getvalue()

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: lime" in capsys.readouterr().out

    def test_chats(self, line_db, cli_output):
        assert main(["--db", str(line_db), "chats"]) == 0
        output = cli_output.getvalue()
        assert "Family" in output
        assert "draft reply" in output

    def test_chats_with_contacts(self, line_db, tmp_path, contacts_csv, cli_output):
        contacts = tmp_path / "contacts.csv"
        contacts.write_text(contacts_csv, encoding="utf-8-sig")

        assert main(["--db", str(line_db), "--contacts", str(contacts), "chats"]) == 0
        assert "Alice" in cli_output.getvalue()

    def test_messages(self, line_db, cli_output):
        assert main(["--db", str(line_db), "messages", GROUP]) == 0
        output = cli_output.getvalue()
        assert "hello everyone" in output
        assert "[写真]" in output

    def test_search(self, line_db, cli_output):
        assert main(["--db", str(line_db), "search", "everyone"]) == 0
        assert "hello everyone" in cli_output.getvalue()

    def test_search_filters(self, line_db, cli_output):
        args = ["--db", str(line_db), "search", "ello", "--type", "1", "--chat", GROUP]
        assert main(args) == 0
        output = cli_output.getvalue()
        assert "hello everyone" in output
        assert "Hello there" not in output

    def test_search_by_attachment_type_only(self, line_db, cli_output):
        assert main(["--db", str(line_db), "search", "--att", "7"]) == 0
        output = cli_output.getvalue()
        assert "Search Results (1 messages)" in output
        assert ALICE in output

    def test_search_needs_query_or_filter(self, line_db, cli_output):
        assert main(["--db", str(line_db), "search"]) == 1
        assert "Specify a search query" in cli_output.getvalue()

    def test_search_without_results(self, line_db, cli_output):
        assert main(["--db", str(line_db), "search", "zzz"]) == 0
        assert "No messages found" in cli_output.getvalue()

    def test_types_and_schema(self, line_db, cli_output):
        assert main(["--db", str(line_db), "types"]) == 0
        assert main(["--db", str(line_db), "schema"]) == 0
        assert "chat_history" in cli_output.getvalue()

    def test_missing_database(self, tmp_path, cli_output):
        assert main(["--db", str(tmp_path / "missing.db"), "chats"]) == 1
        assert "Error" in cli_output.getvalue()

    def test_no_saved_backup(self, tmp_path, cli_output):
        assert main(["--store", str(tmp_path / "store.db"), "chats"]) == 1
        assert "Backup not initialized" in cli_output.getvalue()


class TestExport:
    """Tests for the export command."""

    def test_export_chat_as_text(self, line_db, tmp_path):
        out = tmp_path / "out"
        assert main(["--db", str(line_db), "export", GROUP, "-o", str(out)]) == 0

        (path,) = out.glob("*.txt")
        assert path.name.startswith("[LINE] Family_")
        content = path.read_text(encoding="utf-8-sig")
        assert content.startswith("[LINE] Familyとのトーク履歴\n")
        assert "hello everyone" in content

    def test_export_all_as_csv(self, line_db, tmp_path):
        out = tmp_path / "out"
        assert main(["--db", str(line_db), "export", "--all", "-f", "csv", "-o", str(out)]) == 0

        (path,) = out.glob("*.csv")
        assert path.name.startswith("[LINE] 全トーク履歴_")
        assert path.read_bytes().startswith(b"\xef\xbb\xbf")
        assert path.read_text(encoding="utf-8-sig").splitlines()[0] == (
            "トーク名,グループ,日付,時刻,送信者,メッセージ"
        )

    def test_export_self_name(self, line_db, tmp_path):
        out = tmp_path / "out"
        args = ["--db", str(line_db), "export", ALICE, "--self-name", "me", "-o", str(out)]
        assert main(args) == 0

        (path,) = out.glob("*.txt")
        assert "\tme\tHi, how are you?" in path.read_text(encoding="utf-8-sig")

    def test_export_skips_media_preload(self, line_db, media_tree, tmp_path, monkeypatch):
        """Exports from a stored backup never pull blobs into the media cache."""
        store = str(tmp_path / "store" / "storage.db")
        load = ["--db", str(line_db), "--media", str(media_tree), "--store", store, "load"]
        assert main(load) == 0

        preloaded = []

        async def record_preload(self, chat_id):
            preloaded.append(chat_id)
            return 0

        monkeypatch.setattr(
            "integrations.line.media.MediaLocator.preload_chat_media", record_preload
        )
        out = str(tmp_path / "out")
        assert main(["--store", store, "export", "--all", "-o", out]) == 0
        assert main(["--store", store, "export", GROUP, "-o", out]) == 0
        assert preloaded == []

    def test_export_unknown_chat(self, line_db, tmp_path):
        assert main(["--db", str(line_db), "export", "nope", "-o", str(tmp_path)]) == 1

    def test_export_needs_target(self, line_db):
        assert main(["--db", str(line_db), "export"]) == 1


class TestStorageCommands:
    """Tests for load and clear."""

    def test_load_then_query_then_clear(self, line_db, media_tree, tmp_path, cli_output):
        store = str(tmp_path / "store" / "storage.db")

        load = ["--db", str(line_db), "--media", str(media_tree), "--store", store, "load"]
        assert main(load) == 0
        assert "Media files: 2" in cli_output.getvalue()

        assert main(["--store", store, "chats"]) == 0
        assert "Family" in cli_output.getvalue()

        assert main(["--store", store, "clear"]) == 0
        assert main(["--store", store, "chats"]) == 1

    def test_contacts_apply_to_saved_backup(self, line_db, tmp_path, contacts_csv, cli_output):
        """--contacts without --db is used for the run but not stored."""
        store = str(tmp_path / "store" / "storage.db")
        contacts = tmp_path / "contacts.csv"
        contacts.write_text(contacts_csv, encoding="utf-8")
        assert main(["--db", str(line_db), "--store", store, "load"]) == 0

        cli_output.seek(0)
        cli_output.truncate()
        assert main(["--store", store, "--contacts", str(contacts), "chats"]) == 0
        assert "Alice" in cli_output.getvalue()

        cli_output.seek(0)
        cli_output.truncate()
        assert main(["--store", store, "chats"]) == 0
        assert "Alice" not in cli_output.getvalue()

    def test_load_needs_db(self, tmp_path):
        assert main(["--store", str(tmp_path / "s.db"), "load"]) == 1
