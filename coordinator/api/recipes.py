"""Recipe definition endpoints"""
from fastapi import APIRouter, Body, Depends
from fastapi.responses import PlainTextResponse
from typing import List

from coordinator.core.catalog import CatalogService
from coordinator.core.dependencies import (Services, get_catalog, get_services,
                                          get_state)
from coordinator.core.state_manager import StateManager
from coordinator.utils.recipe_parser import parse_yaml_recipe, recipe_to_yaml
from shared.models import Recipe, RecipeSnapshot

router = APIRouter(prefix="/recipes", tags=["recipes"])


@router.get("", response_model=List[Recipe])
async def list_recipes(state: StateManager = Depends(get_state)):
    """List all live recipes"""
    return state.find(Recipe, order_by="created_at")


@router.post("", response_model=Recipe)
async def save_recipe(recipe: Recipe,
                      catalog: CatalogService = Depends(get_catalog)):
    """Create or replace a recipe"""
    return await catalog.save_recipe(recipe)


@router.post("/from-yaml", response_model=Recipe)
async def save_recipe_from_yaml(
        yaml_content: str = Body(..., media_type="text/plain"),
        catalog: CatalogService = Depends(get_catalog)):
    """Create a recipe from a YAML definition

    Example YAML:
    ```yaml
    recipe:
      name: "Bracket"
      steps:
        - id: "cut"
          name: "Laser cut"
          device_type_id: "laser-cutter"
          estimated_duration: 15
        - id: "bend"
          name: "Press brake"
          device_type_id: "press-brake"
          depends_on: "cut"
    ```
    """
    return await catalog.save_recipe(parse_yaml_recipe(yaml_content))


@router.get("/{recipe_id}", response_model=Recipe)
async def get_recipe(recipe_id: str, state: StateManager = Depends(get_state)):
    return await state.require(Recipe, recipe_id)


@router.get("/{recipe_id}/yaml", response_class=PlainTextResponse)
async def export_recipe(recipe_id: str,
                        state: StateManager = Depends(get_state)):
    """Export a recipe as YAML"""
    return recipe_to_yaml(await state.require(Recipe, recipe_id))


@router.delete("/{recipe_id}")
async def delete_recipe(recipe_id: str,
                        catalog: CatalogService = Depends(get_catalog)):
    await catalog.delete_recipe(recipe_id)
    return {"message": "Recipe deleted", "recipe_id": recipe_id}


@router.get("/{recipe_id}/versions", response_model=List[RecipeSnapshot])
async def list_versions(recipe_id: str,
                        services: Services = Depends(get_services)):
    """All snapshots taken of a recipe, oldest first"""
    return services.snapshots.list_recipe_versions(recipe_id)
