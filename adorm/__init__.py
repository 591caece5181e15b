__version__ = "1.0.0"

from .directory import Directory  # noqa: E402
from .models import Computer, Entity, Group, User  # noqa: E402

__all__ = ["Computer", "Directory", "Entity", "Group", "User", "__version__"]
