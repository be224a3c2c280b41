"""Business logic between the routers and the repository."""

from .labels import LabelService
from .projects import ProjectService
from .tasks import TaskService
from .users import AuthService

__all__ = ["AuthService", "LabelService", "ProjectService", "TaskService"]
