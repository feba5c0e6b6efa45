"""
Planner error taxonomy.

Every failure is local and synchronous. A call that raises one of these
has not written anything to the store.

    PlannerError
    ├── NotFound          : project/task/column/member/user absent
    ├── InvalidCode       : invite code matches no project
    ├── AlreadyExists     : duplicate email at registration
    ├── Unauthenticated   : mutating call without a resolvable actor
    ├── Forbidden         : actor is not allowed to touch the project
    ├── ValidationError   : malformed input (priority, date, title)
    └── ConfigError       : invalid configuration
"""
from typing import Any, Dict


class PlannerError(Exception):
    """Base error for all planner failures."""

    status_code = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON responses and log lines."""
        data = {"error": self.message, "type": self.__class__.__name__}
        if self.context:
            data["context"] = {k: str(v) for k, v in self.context.items()}
        return data


class NotFound(PlannerError):
    """Referenced entity does not exist."""
    status_code = 404


class InvalidCode(PlannerError):
    """Invite code matches no project."""
    status_code = 400


class AlreadyExists(PlannerError):
    """Unique value (e.g. email) already taken."""
    status_code = 409


class Unauthenticated(PlannerError):
    """Mutating call with no resolvable actor."""
    status_code = 401


class Forbidden(PlannerError):
    """Actor is neither a project member nor an administrator."""
    status_code = 403


class ValidationError(PlannerError):
    """Raised when input fields fail validation."""
    status_code = 400


class ConfigError(PlannerError):
    """Raised when configuration is invalid or incomplete."""
    pass
