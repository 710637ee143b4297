# Imported here so SQLModel.metadata holds every table before create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .member import Member  # noqa: F401
from .project import Project  # noqa: F401
from .task import Task  # noqa: F401
