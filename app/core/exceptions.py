"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register one handler per type and
map them to consistent HTTP status codes:

    NotFoundError          → 404
    ValidationError        → 422  (CyclicDependencyError, InvalidActionPayload)
    ConflictError          → 409

Non-fatal conditions (empty scope, missing capacity data, capacity change
with nothing in range) are not exceptions: they are collected as warning
strings next to a best-effort result. Undefined ratios (CPI with AC = 0,
SPI with PV = 0) are not errors either; they are returned as None.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ScenarioPlan", resource_id=42)
    raise ValidationError("name is required", details={"name": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model name (e.g. "ScenarioPlan", "Project").
        resource_id: The PK that was looked up.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class CyclicDependencyError(ValidationError):
    """Raised when a task dependency graph has no valid topological order.

    Fatal for scenario computation and baseline comparison: no result is
    persisted. Maps to HTTP 422 through the ValidationError handlers.

    Args:
        edge: One (predecessor_id, successor_id) pair lying on the cycle.
        task_ids: Every task id left unordered by the topological sort.
    """

    def __init__(
        self,
        edge: tuple[int, int] | None = None,
        task_ids: list[int] | None = None,
    ) -> None:
        self.edge = edge
        self.task_ids = sorted(task_ids or [])
        msg = "Task dependencies contain a cycle"
        if edge is not None:
            msg += f" (edge {edge[0]} → {edge[1]})"
        details = {"task_ids": self.task_ids}
        if edge is not None:
            details["edge"] = {"predecessor_id": edge[0], "successor_id": edge[1]}
        super().__init__(msg, details=details)


class InvalidActionPayload(ValidationError):
    """Raised when a scenario action has an unknown type or a bad payload.

    Application is all-or-nothing: one bad action fails the whole compute.

    Args:
        action_id: PK of the offending ScenarioAction (None before it is stored).
        reason: What is wrong with it.
    """

    def __init__(self, action_id: int | None, reason: str) -> None:
        self.action_id = action_id
        self.reason = reason
        label = f"Action {action_id}" if action_id is not None else "Action"
        super().__init__(
            f"{label}: {reason}",
            details={"action_id": action_id, "reason": reason},
        )
