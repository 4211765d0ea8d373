"""Domain error taxonomy shared by the orchestration core and its callers"""
from typing import Optional


class ProductionError(Exception):
    """Base class for all synchronous validation failures raised by the core"""
    pass


class EntityNotFound(ProductionError):
    """A referenced project, snapshot, device, task or alert does not exist"""

    def __init__(self, kind: str, entity_id: Optional[str]):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} with id {entity_id} not found")


class RecipeDefinitionError(ProductionError):
    """Raised when a recipe or product definition is invalid"""
    pass


class CycleError(RecipeDefinitionError):

    def __init__(self, step_id: str, step_order: Optional[int] = None):
        self.step_id = step_id
        self.step_order = step_order
        location = f" (order {step_order})" if step_order is not None else ""
        super().__init__(
            f"Circular dependency detected involving step '{step_id}'{location}")


class DanglingDependency(RecipeDefinitionError):

    def __init__(self, step_order: int, missing_id: str):
        self.step_order = step_order
        self.missing_id = missing_id
        super().__init__(
            f"Step at order {step_order} depends on non-existent step '{missing_id}'")


class MissingDeviceType(ProductionError):
    """A snapshot step cannot be expanded because it has no device type"""

    def __init__(self, step_order: int, recipe_name: str):
        self.step_order = step_order
        self.recipe_name = recipe_name
        super().__init__(
            f"Step {step_order} of recipe \"{recipe_name}\" does not have a deviceTypeId")


class InvalidTransition(ProductionError):
    """A task status change that the life cycle does not allow"""

    def __init__(self, current, requested, detail: Optional[str] = None):
        self.current = current
        self.requested = requested
        message = f"Cannot transition task from {_name(current)} to {_name(requested)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DependencyNotMet(InvalidTransition):
    """The task this one depends on has not been completed yet"""
    pass


class DeviceTypeMismatch(ProductionError):

    def __init__(self, task_device_type_id: str, device_id: str,
                 device_type_id: str):
        self.task_device_type_id = task_device_type_id
        self.device_id = device_id
        self.device_type_id = device_type_id
        super().__init__(
            f"Device type mismatch: Task requires device type {task_device_type_id}, "
            f"but device {device_id} is of type {device_type_id}")


class InvalidProjectOperation(ProductionError):
    """A project life-cycle request that does not apply to its current status"""
    pass


class InvalidAlertOperation(ProductionError):
    pass


def _name(status) -> str:
    return getattr(status, "value", str(status))
