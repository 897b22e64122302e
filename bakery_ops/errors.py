class NotFoundError(LookupError):
    """Referenced resource is absent or belongs to another company."""


class ForbiddenError(PermissionError):
    """Caller's role may not perform the action."""


class BadRequestError(ValueError):
    """Request is structurally invalid for the resource's current state."""
