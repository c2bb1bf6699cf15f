"""
Exception hierarchy for armkit.

    ArmkitError (base)
    ├── ValidationError - a finalized config breaks a well-formedness rule
    ├── PreconditionError - an accumulation step ran before its prerequisite
    ├── UnsupportedReferenceError - a ResourceId of an unrecognised kind
    ├── DuplicateResourceError - two definitions claim the same ResourceId
    └── CyclicDependencyError - the dependency graph contains a cycle
"""
from typing import Any, Dict, List, Optional, Sequence


class ArmkitError(Exception):
    """Base exception for all armkit errors.

    Attributes:
        message: Human-readable error description
        context: Additional contextual information (resource ids, kinds, ...)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ValidationError(ArmkitError):
    """Raised when a value or a finalized config is not well-formed.

    ``problems`` lists every unmet condition, not only the first one.
    """

    def __init__(
        self,
        message: str,
        problems: Optional[Sequence[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.problems: List[str] = list(problems) if problems else [message]
        if problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message, context)


class PreconditionError(ArmkitError):
    """Raised when a builder operation is invoked before its prerequisite."""

    pass


class UnsupportedReferenceError(ArmkitError):
    """Raised when an operation receives a ResourceId of an unsupported type."""

    def __init__(self, message: str, resource_id: Any):
        super().__init__(message, {"resource_id": resource_id, "type": resource_id.type.type})
        self.resource_id = resource_id


class DuplicateResourceError(ArmkitError):
    """Raised when two definitions in one deployment share a ResourceId."""

    def __init__(self, resource_id: Any):
        super().__init__(
            f"Resource '{resource_id.qualified_name}' is defined more than once",
            {"resource_id": resource_id},
        )
        self.resource_id = resource_id


class CyclicDependencyError(ArmkitError):
    """Raised when resolved dependencies form a cycle.

    ``cycle`` holds the full path with the first id repeated at the end.
    """

    def __init__(self, cycle: Sequence[Any]):
        self.cycle = list(cycle)
        path = " -> ".join(f"{r.type.type}/{r.qualified_name}" for r in self.cycle)
        super().__init__(f"Cyclic dependency detected: {path}")
