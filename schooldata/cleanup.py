"""Resource cleanup for objects that own connections, sessions or caches."""

import asyncio
import typing as t

from .logger import logger


class CleanupMixin:
    """Simple mixin for resource cleanup."""

    def __init__(self) -> None:
        self._resources: list[t.Any] = []
        self._cleaned_up = False
        self._cleanup_lock: asyncio.Lock | None = None

    @property
    def is_cleaned_up(self) -> bool:
        return self._cleaned_up

    def register_resource(self, resource: t.Any) -> None:
        """Register a resource for cleanup."""
        if resource not in self._resources:
            self._resources.append(resource)

    async def cleanup_resource(self, resource: t.Any) -> None:
        """Clean up a single resource using common patterns."""
        if resource is None:
            return

        for method_name in ("close", "aclose", "dispose"):
            method = getattr(resource, method_name, None)
            if method is None:
                continue
            result = method()
            if asyncio.iscoroutine(result):
                await result
            logger.debug(f"Cleaned up {type(resource).__name__} using {method_name}()")
            return

    async def _cleanup_resources(self) -> None:
        """Release resources owned by the subclass itself."""

    async def cleanup(self) -> None:
        """Clean up owned and registered resources exactly once."""
        if self._cleanup_lock is None:
            self._cleanup_lock = asyncio.Lock()

        async with self._cleanup_lock:
            if self._cleaned_up:
                return

            errors = []
            try:
                await self._cleanup_resources()
            finally:
                for resource in self._resources.copy():
                    try:
                        await self.cleanup_resource(resource)
                    except Exception as e:
                        errors.append(f"Failed to cleanup resource: {e}")

                self._resources.clear()
                self._cleaned_up = True

            if errors:
                logger.warning(f"Resource cleanup errors: {'; '.join(errors)}")

    async def __aenter__(self) -> t.Self:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        """Async context manager exit with cleanup."""
        await self.cleanup()
