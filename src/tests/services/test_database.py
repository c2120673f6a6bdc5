"""
Tests for transactional composition and error wrapping.

Tests cover:
- Composed operations rolling back together
- read_only_scope() discarding changes
- SQLAlchemy errors surfacing as DatabaseError
"""

from decimal import Decimal

import pytest

from menu_costing.models import ItemRef
from menu_costing.services import ingredient_service, recipe_service, workspace_service
from menu_costing.services.database import read_only_scope, session_scope
from menu_costing.services.exceptions import DatabaseError, SelfReference


class TestSessionComposition:
    def test_failed_step_rolls_back_earlier_steps(self, pizza_chain, units):
        dough = ItemRef.recipe(pizza_chain.dough.id)
        with pytest.raises(SelfReference):
            with session_scope() as session:
                ingredient_service.set_manual_price(pizza_chain.flour.id, 6, session=session)
                recipe_service.upsert_recipe_item(dough.id, dough, 1, units.un.id, session=session)

        assert ingredient_service.get_ingredient(pizza_chain.flour.id).average_price == Decimal("5")
        assert recipe_service.get_recipe(pizza_chain.dough.id).total_cost == Decimal("5")

    def test_composed_steps_commit_together(self, pizza_chain, units):
        with session_scope() as session:
            ingredient_service.set_manual_price(pizza_chain.flour.id, 6, session=session)
            recipe_service.set_recipe_attributes(
                pizza_chain.dough.id, yield_quantity=3, session=session
            )

        assert recipe_service.get_recipe(pizza_chain.dough.id).cost_per_portion == Decimal("2")

    def test_read_only_scope_discards(self, flour):
        with read_only_scope() as session:
            ingredient_service.set_manual_price(flour.id, 9, session=session)
        assert ingredient_service.get_ingredient(flour.id).average_price == Decimal("5")


class TestErrorWrapping:
    def test_integrity_error_wrapped(self, workspace):
        with pytest.raises(DatabaseError, match="create_workspace failed"):
            workspace_service.create_workspace("Again", workspace.slug)


class TestDatabaseLifecycle:
    @pytest.fixture
    def file_database(self, monkeypatch, tmp_path):
        from menu_costing.services import database
        from menu_costing.utils.config import reset_config

        monkeypatch.setenv("MENU_COSTING_DATABASE_URL", f"sqlite:///{tmp_path / 'costs.db'}")
        monkeypatch.setenv("MENU_COSTING_ENV", "test")
        reset_config()
        database.close_connections()
        yield database
        database.close_connections()
        reset_config()

    def test_initialize_and_verify(self, file_database):
        file_database.initialize_app_database()
        assert file_database.verify_database()

    def test_reset_requires_confirmation(self, file_database):
        with pytest.raises(ValueError, match="confirm=True"):
            file_database.reset_database()

    def test_reset_recreates_tables(self, file_database):
        file_database.initialize_app_database()
        file_database.reset_database(confirm=True)
        assert file_database.verify_database()
