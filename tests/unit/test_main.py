"""
Unit Tests for the console entry point
"""
import pytest
from rich.console import Console

from conftest import order_record
from orderboard.main import build_config, create_parser, main, render_board
from orderboard.models import Column, Order
from orderboard.store import BoardStore


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("ORDERBOARD_API_URL", raising=False)
    monkeypatch.delenv("ORDERBOARD_POLL_INTERVAL", raising=False)


class TestParser:
    """Test argument parsing"""

    def test_watch_options(self):
        """Test flags land in the config"""
        args = create_parser().parse_args(
            ["--server-url", "http://x/api", "-t", "tok", "-v", "watch", "--interval", "5"]
        )
        config = build_config(args)

        assert args.command == "watch"
        assert config.api_base_url == "http://x/api"
        assert config.auth_token == "tok"
        assert config.poll_interval == 5.0
        assert config.log_level == "DEBUG"

    def test_no_command_exits(self, capsys):
        """Test running without a command prints help and fails"""
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1


class TestRenderBoard:
    """Test the rich board table"""

    def test_columns_and_cards(self, seeded_records):
        """Test headers carry counts and cards show id and customer"""
        store = BoardStore()
        store.replace_all([Order.from_dict(r) for r in seeded_records])
        console = Console(record=True, width=200)

        console.print(render_board(store))
        text = console.export_text()

        assert "Created (3)" in text
        assert "Out for Delivery (1)" in text
        assert "#4 Delta Diner" in text
        assert "Somchai" in text

    def test_search_term_filters(self, seeded_records):
        """Test only visible orders are rendered"""
        store = BoardStore()
        store.replace_all([Order.from_dict(r) for r in seeded_records])
        store.set_search_term(Column.CREATED, "bravo")
        console = Console(record=True, width=200)

        console.print(render_board(store))
        text = console.export_text()

        assert "Bravo Mart" in text
        assert "Alpha Ice" not in text

    def test_markup_in_names_is_escaped(self):
        """Test customer names are printed literally"""
        store = BoardStore()
        store.replace_all([Order.from_dict(order_record(1, customer="[bold]Shop[/bold]"))])
        console = Console(record=True, width=200)

        console.print(render_board(store))

        assert "[bold]Shop[/bold]" in console.export_text()
