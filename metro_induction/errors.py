"""
Exception types raised by the induction planner.

All subclass ``InductionError`` so callers can catch planner failures as one
family while still distinguishing the kinds:

  - ``UnauthorizedError``      : caller lacks permission (raised by the
                                  access-control layer, never by the engine).
  - ``RecordNotFoundError``    : a referenced trainset does not resolve.
  - ``DecisionValidationError``: a save payload is malformed; nothing written.
  - ``ParameterValidationError``: a scoring penalty is not a non-negative integer.
"""

from __future__ import annotations


class InductionError(RuntimeError):
    """Base class for induction planner errors."""


class UnauthorizedError(InductionError):
    """Raised by an access-control layer when the actor may not call an operation.

    Attributes:
        actor:     Identity that was rejected.
        operation: Name of the guarded operation.
    """

    def __init__(self, actor: str, operation: str) -> None:
        self.actor = actor
        self.operation = operation
        super().__init__(f"Actor '{actor}' is not authorized to call '{operation}'.")


class RecordNotFoundError(InductionError):
    """Raised when a referenced record does not exist.

    Attributes:
        kind: Record kind, e.g. ``"trainset"``.
        key:  The identifier that failed to resolve.
    """

    def __init__(self, kind: str, key: object) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} found for '{key}'.")


class DecisionValidationError(InductionError):
    """Raised when an induction decision payload fails validation.

    The whole save is rejected; no decision rows are deleted or inserted.

    Attributes:
        errors: One message per problem found, in payload order.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        summary = "; ".join(self.errors[:5])
        if len(self.errors) > 5:
            summary += f"; ... and {len(self.errors) - 5} more"
        super().__init__(f"Induction decision payload rejected: {summary}")


class ParameterValidationError(InductionError):
    """Raised when a scoring penalty is written or read with an unusable value.

    Penalties must be non-negative whole numbers. Integral floats such as
    ``40.0`` are accepted and stored as ``40``.

    Attributes:
        name:  Parameter name.
        value: The rejected value.
    """

    def __init__(self, name: str, value: object) -> None:
        self.name = name
        self.value = value
        super().__init__(
            f"Parameter '{name}' must be a non-negative integer, got {value!r}."
        )
