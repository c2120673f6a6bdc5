"""
Command line entry point for the menu costing engine.

Usage Examples:
    # Create the database tables
    menu-costing init-db

    # Rebuild every cached cost of workspace 1
    menu-costing recalculate 1

    # What would 6.00 per price unit of ingredient 3 do?
    menu-costing simulate 3 6.00
    menu-costing simulate 3 6.00 --json

    # Margin of an item costing 12.50 sold at 30.00 on menu 2
    menu-costing price 2 12.50 30.00
"""

import argparse
import json
import logging
import sys
from decimal import Decimal, InvalidOperation

from .services import cascade_service, menu_service, simulator_service
from .services.database import initialize_app_database
from .services.dto_utils import cost_to_string
from .services.exceptions import ServiceError
from .utils.config import get_config


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value}")


def init_db_cmd() -> int:
    config = get_config()
    print(f"Initializing database ({config.environment})...")
    initialize_app_database()
    print(f"Database ready at {config.database_url}")
    return 0


def recalculate_cmd(workspace_id: int) -> int:
    result = cascade_service.recalculate_workspace(workspace_id)
    print(f"Recalculated workspace {workspace_id}")
    print(f"  Items recomputed: {len(result.updated)}")
    print(f"  Menu items repriced: {len(result.repriced_menu_items)}")
    return 0


def simulate_cmd(ingredient_id: int, new_price: Decimal, as_json: bool) -> int:
    report = simulator_service.simulate(ingredient_id, new_price)
    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0

    ingredient = report.ingredient
    summary = report.summary
    print(
        f"{ingredient.name}: {cost_to_string(ingredient.current_price)} -> "
        f"{cost_to_string(ingredient.new_price)} per {ingredient.price_unit}"
    )
    for title, changes in (
        ("Variations", report.variations),
        ("Recipes", report.recipes),
        ("Products", report.products),
    ):
        if not changes:
            continue
        print(f"\n{title}:")
        for change in changes:
            print(
                f"  {change.name}: {cost_to_string(change.current_cost)} -> "
                f"{cost_to_string(change.new_cost)} ({change.percentage_change}%)"
            )
    if report.menu_items:
        print("\nMenu items:")
        for impact in report.menu_items:
            size = f" ({impact.size_name})" if impact.size_name else ""
            print(
                f"  {impact.item_name}{size} [{impact.menu_name}]: margin "
                f"{impact.current_margin_percentage}% -> {impact.new_margin_percentage}%, "
                f"suggested price {cost_to_string(impact.suggested_price)}"
            )
    print(
        f"\nAverage cost change: {summary.average_cost_increase}%"
        f"  Negative margins: {summary.menu_items_with_negative_margin}"
    )
    return 0


def price_cmd(menu_id: int, item_cost: Decimal, sale_price: Decimal) -> int:
    result = menu_service.price_menu_item(menu_id, item_cost, sale_price)
    print(f"Item cost:        {cost_to_string(result.item_cost)}")
    print(f"Fees:             {cost_to_string(result.fees_cost)}")
    print(f"Fixed costs:      {cost_to_string(result.apportioned_fixed_cost)}")
    print(f"Total cost:       {cost_to_string(result.total_cost)}")
    print(f"Margin:           {cost_to_string(result.margin_value)} ({result.margin_percentage}%)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="menu-costing",
        description="Cost cascade and menu margin tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage Examples:", 1)[1],
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create the database tables")

    recalculate_parser = subparsers.add_parser(
        "recalculate", help="Recompute every cached cost of a workspace"
    )
    recalculate_parser.add_argument("workspace_id", type=int, help="Workspace ID")

    simulate_parser = subparsers.add_parser(
        "simulate", help="Show the impact of a new ingredient price without saving it"
    )
    simulate_parser.add_argument("ingredient_id", type=int, help="Ingredient ID")
    simulate_parser.add_argument("new_price", type=_decimal, help="Price per price unit")
    simulate_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    price_parser = subparsers.add_parser("price", help="Price an item cost on a menu")
    price_parser.add_argument("menu_id", type=int, help="Menu ID")
    price_parser.add_argument("item_cost", type=_decimal, help="Item cost")
    price_parser.add_argument("sale_price", type=_decimal, help="Sale price")

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 1

    try:
        if args.command == "init-db":
            return init_db_cmd()
        if args.command == "recalculate":
            return recalculate_cmd(args.workspace_id)
        if args.command == "simulate":
            return simulate_cmd(args.ingredient_id, args.new_price, args.json)
        if args.command == "price":
            return price_cmd(args.menu_id, args.item_cost, args.sale_price)
    except ServiceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(f"Unknown command: {args.command}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
