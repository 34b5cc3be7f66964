class BudgetError(Exception):
    """Base class for every error raised by the budget services."""


class ValidationError(BudgetError, ValueError):
    """Malformed template or input; raised before any gateway call."""


class NotFoundError(BudgetError, ValueError):
    pass


class AuthorizationError(BudgetError):
    pass


class GatewayError(BudgetError):
    """Failure surfaced by the persistence gateway."""


class MissingIndexError(GatewayError):
    """The store cannot serve a compound filter without an index."""
