"""Root set models and loader.

The root set is the ordered list of directories a collection cycle starts
from. It is stored as a JSON array in ``paths.json``:

    [
        {"Organisation": "acme", "User": "alice", "Path": "/data/alice"}
    ]
"""

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class RootEntry(BaseModel):
    """A configured traversal root.

    Attributes:
        organisation: Value of the ``org`` label for everything below the root.
        user: Value of the ``user`` label for everything below the root.
        path: Directory path inside the filesystem.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    organisation: Annotated[str, Field(alias="Organisation", description="Organisation label")]
    user: Annotated[str, Field(alias="User", description="User label")]
    path: Annotated[str, Field(alias="Path", min_length=1, description="Root directory")]

    def labels(self) -> dict[str, str]:
        """Return the label set for the root directory itself."""
        return {"org": self.organisation, "user": self.user, "path": self.path}


class RootsConfigError(Exception):
    """Raised when the root set cannot be loaded."""


_ROOTS_ADAPTER = TypeAdapter(list[RootEntry])


def parse_roots(data: str | bytes) -> tuple[RootEntry, ...]:
    """Parse a JSON document into a root set.

    Args:
        data: JSON array of root objects.

    Returns:
        Root entries in file order.

    Raises:
        RootsConfigError: If the document is not valid JSON or does not
            match the schema.
    """
    try:
        return tuple(_ROOTS_ADAPTER.validate_json(data))
    except ValidationError as e:
        raise RootsConfigError(f"Invalid root set: {e}") from e


def load_roots(path: Path) -> tuple[RootEntry, ...]:
    """Load the root set from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        Root entries in file order.

    Raises:
        RootsConfigError: If the file cannot be read or parsed.
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise RootsConfigError(f"Failed to read root set {path}: {e}") from e
    return parse_roots(data)
