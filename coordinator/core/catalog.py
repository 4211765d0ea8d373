"""Live recipe, product and device definitions"""
import logging
from datetime import datetime
from typing import Callable, Optional

from coordinator.core.dependency_validator import DependencyValidator
from coordinator.core.event_sink import EventSink, GLOBAL_ROOM, publish_safely
from coordinator.core.state_manager import StateManager
from shared.enums import DeviceStatus, EventTopic
from shared.errors import RecipeDefinitionError
from shared.models import Device, DeviceStatusEntry, Product, Recipe, utc_now

logger = logging.getLogger(__name__)


class CatalogService:
    """Saves and soft-deletes the definitions projects are built from"""

    def __init__(self,
                 state: StateManager,
                 events: EventSink,
                 validator: Optional[DependencyValidator] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.state = state
        self.events = events
        self.validator = validator or DependencyValidator()
        self.clock = clock

    # ========================================================================
    # Recipes
    # ========================================================================

    async def save_recipe(self, recipe: Recipe) -> Recipe:
        """Validate and persist a recipe, create or update.

        Raises:
            CycleError, DanglingDependency: If the step graph is invalid
            RecipeDefinitionError: If two steps share an order or the recipe
                was deleted
        """
        orders = [step.order for step in recipe.steps]
        if len(orders) != len(set(orders)):
            raise RecipeDefinitionError(
                f"Recipe \"{recipe.name}\" has duplicate step orders")
        self.validator.validate(recipe.steps)

        existing = await self.state.get(Recipe, recipe.id, include_deleted=True)
        if existing is not None and existing.is_deleted:
            raise RecipeDefinitionError(
                f"Recipe {recipe.id} has been deleted and cannot be saved again")
        if existing is not None:
            recipe.created_at = existing.created_at
        recipe.is_deleted = False
        recipe.estimated_duration = sum(step.estimated_duration
                                        for step in recipe.steps)
        recipe.updated_at = self.clock()

        await self.state.save(recipe)
        logger.info(f"Saved recipe {recipe.id} ({len(recipe.steps)} steps)")
        return recipe

    async def delete_recipe(self, recipe_id: str) -> Recipe:
        recipe = await self.state.require(Recipe, recipe_id)
        recipe.is_deleted = True
        recipe.updated_at = self.clock()
        await self.state.save(recipe)
        logger.info(f"Deleted recipe {recipe_id}")
        return recipe

    # ========================================================================
    # Products
    # ========================================================================

    async def save_product(self, product: Product) -> Product:
        """Persist a product after checking its recipe references"""
        seen = set()
        for ref in product.recipes:
            if ref.recipe_id in seen:
                raise RecipeDefinitionError(
                    f"Product \"{product.name}\" references recipe "
                    f"{ref.recipe_id} more than once")
            seen.add(ref.recipe_id)
            await self.state.require(Recipe, ref.recipe_id)

        existing = await self.state.get(Product, product.id,
                                        include_deleted=True)
        if existing is not None and existing.is_deleted:
            raise RecipeDefinitionError(
                f"Product {product.id} has been deleted and cannot be saved again")
        if existing is not None:
            product.created_at = existing.created_at
        product.is_deleted = False
        product.updated_at = self.clock()

        await self.state.save(product)
        logger.info(f"Saved product {product.id} ({len(product.recipes)} recipes)")
        return product

    async def delete_product(self, product_id: str) -> Product:
        product = await self.state.require(Product, product_id)
        product.is_deleted = True
        product.updated_at = self.clock()
        await self.state.save(product)
        logger.info(f"Deleted product {product_id}")
        return product

    # ========================================================================
    # Devices
    # ========================================================================

    async def register_device(self, device: Device) -> Device:
        device.updated_at = self.clock()
        await self.state.save(device)
        logger.info(
            f"Registered device {device.id} of type {device.device_type_id}")
        await self._publish_device(device)
        return device

    async def set_device_status(self,
                                device_id: str,
                                status: DeviceStatus,
                                reason: str,
                                changed_by: str = "System") -> Device:
        device = await self.state.require(Device, device_id)
        now = self.clock()
        device.status = status
        device.status_history.append(
            DeviceStatusEntry(status=status,
                              changed_at=now,
                              reason=reason,
                              changed_by=changed_by))
        if status != DeviceStatus.MAINTENANCE:
            device.error_reason = None
        device.updated_at = now
        await self.state.save(device)
        await self._publish_device(device)
        return device

    async def _publish_device(self, device: Device) -> None:
        await publish_safely(self.events, EventTopic.DEVICE_UPDATED,
                             device.model_dump(mode="json"), [GLOBAL_ROOM])
