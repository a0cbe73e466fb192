"""Registry of functions available to the model."""

from collections.abc import Iterable, Sequence

from bridge.errors import ConfigurationError
from bridge.tools.base import FunctionDefinition
from bridge.utils.logging import get_logger

logger = get_logger(__name__)


class FunctionRegistry:
    """Immutable-after-startup catalog of function definitions keyed by name."""

    def __init__(self, definitions: Iterable[FunctionDefinition] = ()):
        self._functions: dict[str, FunctionDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: FunctionDefinition) -> None:
        """Register a function.

        Raises:
            ConfigurationError: If a function with the same name is registered
        """
        if definition.name in self._functions:
            raise ConfigurationError(f"Duplicate function name: {definition.name}")
        self._functions[definition.name] = definition

    def get(self, name: str) -> FunctionDefinition | None:
        return self._functions.get(name)

    def definitions(self, names: Sequence[str] | None = None) -> list[FunctionDefinition]:
        """Definitions in registration order, or in the order of ``names``.

        Unknown names are skipped.
        """
        if names is None:
            return list(self._functions.values())

        missing = [name for name in names if name not in self._functions]
        if missing:
            logger.warning(f"Requested functions not registered: {', '.join(missing)}")
        return [self._functions[name] for name in names if name in self._functions]

    def __len__(self) -> int:
        return len(self._functions)

    def __contains__(self, name: object) -> bool:
        return name in self._functions
