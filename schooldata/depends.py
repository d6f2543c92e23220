import typing as t
from bevy import get_container
from contextlib import suppress


class Depends:
    """Process-wide dependency registry.

    Holds the shared pieces of the data-access layer (settings, the
    repository cache, the database) so that request-scoped objects such as
    units of work can be built without threading them through every call.
    """

    @staticmethod
    def set(class_: t.Any, instance: t.Any = None) -> t.Any:
        """Register a class/instance in the dependency container.

        Returns the instance that was registered.
        """
        if instance is None:
            instance = class_()
        get_container().add(class_, instance)
        return instance

    @staticmethod
    def get_sync(category: t.Any) -> t.Any:
        """Get a registered dependency instance.

        Raises:
            LookupError: If the container cannot provide the dependency
        """
        name = getattr(category, "__name__", str(category))
        try:
            result = get_container().get(category)
        except Exception as e:
            msg = f"Dependency '{name}' not found in container"
            raise LookupError(msg) from e
        if isinstance(result, tuple):
            if len(result) == 1:
                return result[0]
            msg = f"Dependency '{name}' not found in container"
            raise LookupError(msg)
        return result

    @staticmethod
    def clear() -> None:
        """Reset the dependency container (testing helper)."""
        container = get_container()
        for attr in ("instances", "_instances", "_factories", "_qualifier_map"):
            with suppress(AttributeError):
                getattr(container, attr).clear()


depends = Depends()

__all__ = ["Depends", "depends", "get_container"]
