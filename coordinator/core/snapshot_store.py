"""Versioned, immutable snapshots of recipes and products with smart caching"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from coordinator.core.dependency_validator import DependencyValidator
from coordinator.core.state_manager import StateManager
from shared.errors import RecipeDefinitionError
from shared.models import (Product, ProductRecipeSnapshotRef, ProductSnapshot,
                           Recipe, RecipeSnapshot, RecipeStepSnapshot, utc_now)

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Creates and reuses point-in-time copies of live definitions.

    Smart caching, identical for both kinds:
    1. Load the live entity
    2. Find its latest snapshot (highest version)
    3. No snapshot yet -> create version 1
    4. snapshot.created_at >= live.updated_at -> reuse it (cache hit)
    5. Otherwise the live entity was edited -> create latest.version + 1

    Creation is append-only; earlier versions are never touched.
    """

    def __init__(self,
                 state: StateManager,
                 validator: Optional[DependencyValidator] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.state = state
        self.validator = validator or DependencyValidator()
        self.clock = clock

    # ========================================================================
    # Recipes
    # ========================================================================

    async def get_or_create_recipe_snapshot(self,
                                            recipe_id: str) -> RecipeSnapshot:
        """Get or create a recipe snapshot with smart caching

        Raises:
            EntityNotFound: If the live recipe does not exist
            RecipeDefinitionError: If the recipe has no steps or an invalid graph
        """
        recipe = await self.state.require(Recipe, recipe_id)
        latest = self.get_latest_recipe_snapshot(recipe_id)

        if latest is not None and latest.created_at >= recipe.updated_at:
            logger.debug(
                f"Reusing snapshot v{latest.version} of recipe {recipe_id}")
            return latest

        if not recipe.steps:
            raise RecipeDefinitionError(
                f"Recipe \"{recipe.name}\" does not have any steps")
        self.validator.validate(recipe.steps)

        snapshot = RecipeSnapshot(
            original_recipe_id=recipe.id,
            version=latest.version + 1 if latest else 1,
            recipe_number=recipe.recipe_number,
            name=recipe.name,
            description=recipe.description,
            steps=[
                RecipeStepSnapshot(**step.model_dump())
                for step in recipe.steps
            ],
            estimated_duration=recipe.estimated_duration,
            created_at=self.clock(),
        )
        await self.state.save(snapshot)
        logger.info(
            f"Created snapshot v{snapshot.version} of recipe {recipe_id}")
        return snapshot

    def get_latest_recipe_snapshot(
            self, recipe_id: str) -> Optional[RecipeSnapshot]:
        latest = self.state.find(RecipeSnapshot,
                                 original_recipe_id=recipe_id,
                                 order_by="-version",
                                 limit=1)
        return latest[0] if latest else None

    def list_recipe_versions(self, recipe_id: str) -> List[RecipeSnapshot]:
        """All snapshots of a recipe, oldest first"""
        return self.state.find(RecipeSnapshot,
                               original_recipe_id=recipe_id,
                               order_by="version")

    async def batch_create_recipe_snapshots(
            self, recipe_ids: List[str]) -> List[RecipeSnapshot]:
        return [
            await self.get_or_create_recipe_snapshot(recipe_id)
            for recipe_id in recipe_ids
        ]

    # ========================================================================
    # Products
    # ========================================================================

    async def get_or_create_product_snapshot(
            self, product_id: str) -> ProductSnapshot:
        """Get or create a product snapshot with smart caching

        Every referenced recipe is snapshotted first, so the product snapshot
        only ever points at recipe snapshots that already exist.
        """
        product = await self.state.require(Product, product_id)
        if not product.recipes:
            raise RecipeDefinitionError(
                f"Product \"{product.name}\" does not reference any recipes")

        refs = []
        for ref in product.recipes:
            recipe_snapshot = await self.get_or_create_recipe_snapshot(
                ref.recipe_id)
            refs.append(
                ProductRecipeSnapshotRef(recipe_snapshot_id=recipe_snapshot.id,
                                         original_recipe_id=ref.recipe_id,
                                         quantity=ref.quantity))

        latest = self.get_latest_product_snapshot(product_id)
        if latest is not None and latest.created_at >= product.updated_at:
            logger.debug(
                f"Reusing snapshot v{latest.version} of product {product_id}")
            return latest

        snapshot = ProductSnapshot(
            original_product_id=product.id,
            version=latest.version + 1 if latest else 1,
            product_number=product.product_number,
            name=product.name,
            recipes=refs,
            created_at=self.clock(),
        )
        await self.state.save(snapshot)
        logger.info(
            f"Created snapshot v{snapshot.version} of product {product_id}")
        return snapshot

    def get_latest_product_snapshot(
            self, product_id: str) -> Optional[ProductSnapshot]:
        latest = self.state.find(ProductSnapshot,
                                 original_product_id=product_id,
                                 order_by="-version",
                                 limit=1)
        return latest[0] if latest else None

    async def batch_create_product_snapshots(
            self, product_ids: List[str]) -> List[ProductSnapshot]:
        return [
            await self.get_or_create_product_snapshot(product_id)
            for product_id in product_ids
        ]

    async def resolve_recipe_snapshots(
            self, product_snapshot: ProductSnapshot) -> List[RecipeSnapshot]:
        """Load the recipe snapshots a product snapshot points at"""
        return [
            await self.state.require(RecipeSnapshot, ref.recipe_snapshot_id)
            for ref in product_snapshot.recipes
        ]
