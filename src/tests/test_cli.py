"""
Tests for the command line interface.

Tests cover:
- Argument parsing
- recalculate, simulate and price commands
- Error reporting and exit codes
"""

import json

import pytest

from menu_costing.main import build_parser, main
from menu_costing.models import ItemRef
from menu_costing.services import menu_service


class TestParser:
    def test_simulate_arguments(self):
        args = build_parser().parse_args(["simulate", "3", "6.50", "--json"])
        assert args.ingredient_id == 3
        assert str(args.new_price) == "6.50"
        assert args.json is True

    def test_rejects_non_numeric_price(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["price", "1", "ten", "20"])

    def test_no_command(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestCommands:
    def test_recalculate(self, workspace, pizza_chain, capsys):
        assert main(["recalculate", str(workspace.id)]) == 0
        out = capsys.readouterr().out
        assert "Items recomputed: 2" in out

    def test_simulate_text(self, pizza_chain, menu, capsys):
        menu_service.upsert_menu_item(menu.id, ItemRef.product(pizza_chain.pizza.id), 10)
        assert main(["simulate", str(pizza_chain.flour.id), "6"]) == 0
        out = capsys.readouterr().out
        assert "Flour: 5.00 -> 6.00 per kg" in out
        assert "Dough: 5.00 -> 6.00" in out
        assert "suggested price 12.00" in out

    def test_simulate_text_shows_size(self, pizza_chain, menu, pizza_sizes, capsys):
        menu_service.upsert_menu_item(
            menu.id, ItemRef.product(pizza_chain.pizza.id), 14, size_option_id=pizza_sizes.large.id
        )
        assert main(["simulate", str(pizza_chain.flour.id), "6"]) == 0
        assert "Pizza (Large) [Dine-in]" in capsys.readouterr().out

    def test_simulate_json(self, pizza_chain, capsys):
        assert main(["simulate", str(pizza_chain.flour.id), "6", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["ingredient"]["new_base_cost"] == "0.00600000"
        assert len(data["recipes"]) == 1

    def test_price(self, menu, capsys):
        menu_service.upsert_menu_fee(menu.id, "Card", "percentage", 10)
        assert main(["price", str(menu.id), "10", "40"]) == 0
        out = capsys.readouterr().out
        assert "Total cost:" in out
        assert "14.00" in out

    def test_service_error_exit_code(self, test_db, capsys):
        assert main(["simulate", "999", "1"]) == 1
        captured = capsys.readouterr()
        assert "ERROR: Ingredient with ID 999 not found" in captured.err
        assert "ERROR" not in captured.out
