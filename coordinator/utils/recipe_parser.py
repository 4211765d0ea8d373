"""Recipe definition parser for YAML format"""
from typing import Any, Dict, List

import yaml

from coordinator.core.dependency_validator import validate_steps
from shared.errors import RecipeDefinitionError
from shared.models import Recipe, RecipeStep, new_id


def parse_yaml_recipe(yaml_content: str) -> Recipe:
    """Parse a YAML recipe definition into a Recipe model.

    Expected YAML format:
    ```yaml
    recipe:
      name: "Bracket"
      recipe_number: "RC-0001"
      steps:
        - id: "cut"
          name: "Laser cut"
          device_type_id: "laser-cutter"
          estimated_duration: 15
        - id: "bend"
          name: "Press brake"
          device_type_id: "press-brake"
          estimated_duration: 10
          depends_on: "cut"
          quality_checks:
            - "Angle within 0.5 degrees"
    ```

    Steps are ordered by position unless they carry an explicit ``order``.

    Raises:
        RecipeDefinitionError: If the YAML is invalid, misses required fields
            or the step graph has dangling references or cycles
    """
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise RecipeDefinitionError(f"Invalid YAML: {e}")

    if not isinstance(data, dict):
        raise RecipeDefinitionError("YAML must contain a dictionary")

    if "recipe" not in data:
        raise RecipeDefinitionError("YAML must contain 'recipe' key")

    recipe_def = data["recipe"]
    if not isinstance(recipe_def, dict) or "name" not in recipe_def:
        raise RecipeDefinitionError("Recipe must have a 'name'")

    step_defs = recipe_def.get("steps")
    if not isinstance(step_defs, list) or not step_defs:
        raise RecipeDefinitionError("Recipe must have a non-empty 'steps' list")

    steps = []
    for idx, step_def in enumerate(step_defs):
        try:
            steps.append(_parse_step(step_def, idx))
        except (KeyError, ValueError, TypeError) as e:
            raise RecipeDefinitionError(
                f"Error parsing step at index {idx}: {e}")

    validate_steps(steps)

    return Recipe(id=recipe_def.get("id", new_id()),
                  recipe_number=recipe_def.get("recipe_number"),
                  name=recipe_def["name"],
                  description=recipe_def.get("description"),
                  steps=steps,
                  estimated_duration=sum(s.estimated_duration for s in steps))


def _parse_step(step_def: Dict[str, Any], index: int) -> RecipeStep:
    if not isinstance(step_def, dict):
        raise RecipeDefinitionError(
            f"Step at index {index} must be a dictionary")

    if "name" not in step_def:
        raise RecipeDefinitionError(
            f"Step at index {index} must have a 'name'")

    depends_on = step_def.get("depends_on") or []
    if isinstance(depends_on, str):
        depends_on = [depends_on]
    elif not isinstance(depends_on, list) or not all(
            isinstance(d, str) for d in depends_on):
        raise RecipeDefinitionError(
            f"Step '{step_def['name']}' depends_on must be a string or list of strings"
        )

    quality_checks = step_def.get("quality_checks") or []
    if not isinstance(quality_checks, list):
        raise RecipeDefinitionError(
            f"Step '{step_def['name']}' quality_checks must be a list")

    return RecipeStep(id=str(step_def.get("id", new_id())),
                      order=step_def.get("order", index + 1),
                      name=step_def["name"],
                      description=step_def.get("description", ""),
                      device_type_id=step_def.get("device_type_id"),
                      estimated_duration=step_def.get("estimated_duration", 0),
                      depends_on=depends_on,
                      instructions=step_def.get("instructions"),
                      quality_checks=quality_checks)


def recipe_to_yaml(recipe: Recipe) -> str:
    """Convert a Recipe model to YAML format."""
    recipe_dict: Dict[str, Any] = {
        "recipe": {
            "id": recipe.id,
            "name": recipe.name,
            "steps": []
        }
    }
    if recipe.recipe_number:
        recipe_dict["recipe"]["recipe_number"] = recipe.recipe_number
    if recipe.description:
        recipe_dict["recipe"]["description"] = recipe.description

    steps: List[Dict[str, Any]] = recipe_dict["recipe"]["steps"]
    for step in sorted(recipe.steps, key=lambda s: s.order):
        step_dict: Dict[str, Any] = {
            "id": step.id,
            "order": step.order,
            "name": step.name,
            "device_type_id": step.device_type_id,
            "estimated_duration": step.estimated_duration,
        }
        if step.description:
            step_dict["description"] = step.description
        if step.depends_on:
            step_dict["depends_on"] = list(step.depends_on)
        if step.instructions:
            step_dict["instructions"] = step.instructions
        if step.quality_checks:
            step_dict["quality_checks"] = list(step.quality_checks)
        steps.append(step_dict)

    return yaml.dump(recipe_dict, sort_keys=False, default_flow_style=False)
