"""Pytest configuration and fixtures for service layer tests."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from menu_costing.models import Base, ItemRef


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import menu_costing.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def workspace(test_db):
    """Provide a workspace with no labor rate."""
    from menu_costing.services import workspace_service

    return workspace_service.create_workspace("Test Pizzeria", "test-pizzeria")


@pytest.fixture(scope="function")
def units(workspace):
    """Provide a unit table: g/kg, ml/l, un/dz."""
    from menu_costing.services import unit_service

    def create(name, abbreviation, measurement_class, factor, is_base=False):
        return unit_service.create_unit(
            workspace.id, name, abbreviation, measurement_class, factor, is_base=is_base
        )

    return SimpleNamespace(
        g=create("gram", "g", "weight", 1, is_base=True),
        kg=create("kilogram", "kg", "weight", 1000),
        ml=create("milliliter", "ml", "volume", 1, is_base=True),
        l=create("liter", "l", "volume", 1000),
        un=create("unit", "un", "count", 1, is_base=True),
        dz=create("dozen", "dz", "count", 12),
    )


@pytest.fixture(scope="function")
def flour(workspace, units):
    """Provide Flour priced by hand at 5.00/kg (0.005/g)."""
    from menu_costing.services import ingredient_service

    return ingredient_service.create_ingredient(
        workspace.id, "Flour", "weight", units.kg.id, price=Decimal("5.00")
    )


@pytest.fixture(scope="function")
def pizza_chain(workspace, units, flour):
    """Provide Flour -> Dough (1000 g, yields 2 un) -> Pizza (1 un of Dough).

    Dough costs 5.00 per batch and 2.50 per portion; Pizza costs 2.50.
    """
    from menu_costing.services import product_service, recipe_service

    dough = recipe_service.create_recipe(workspace.id, "Dough", Decimal("2"), units.un.id)
    recipe_service.upsert_recipe_item(
        dough.id, ItemRef.ingredient(flour.id), Decimal("1000"), units.g.id
    )
    pizza = product_service.create_product(workspace.id, "Pizza")
    product_service.upsert_product_composition(
        pizza.id, ItemRef.recipe(dough.id), Decimal("1"), units.un.id
    )
    return SimpleNamespace(flour=flour, dough=dough, pizza=pizza)


@pytest.fixture(scope="function")
def menu(workspace):
    """Provide a menu without fees or apportionment."""
    from menu_costing.services import menu_service

    return menu_service.create_menu(workspace.id, "Dine-in", "percentage_of_sale", None)


@pytest.fixture(scope="function")
def pizza_sizes(workspace, pizza_chain):
    """Provide a size group (Medium x1 reference, Large x1.5) attached to Pizza."""
    from menu_costing.services import product_service, size_service

    group = size_service.create_size_group(
        workspace.id,
        "Pizza sizes",
        [
            {"name": "Medium", "multiplier": 1, "is_reference": True},
            {"name": "Large", "multiplier": Decimal("1.5")},
        ],
    )
    product_service.set_product_size_group(pizza_chain.pizza.id, group.id)
    medium, large = group.options
    return SimpleNamespace(group=group, medium=medium, large=large)
