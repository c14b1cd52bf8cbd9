"""Interceptor installation engine.

The engine is the only component that talks to the InterceptionLayer on
behalf of the registry. It turns specs into opaque handles and back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from mockmode.errors import InterceptorInstallationFailed
from mockmode.interception import InterceptionLayer, InterceptorSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Handle:
    """Opaque token identifying one installed interceptor."""

    id: str

    def __repr__(self) -> str:
        return f"Handle({self.id[:8]})"


class InterceptorEngine:
    """Installs and removes interceptors in an InterceptionLayer.

    Example:
        >>> engine = InterceptorEngine()
        >>> handles = engine.install([spec_a, spec_b])
        >>> engine.remove(handles)
    """

    def __init__(self, layer: InterceptionLayer | None = None) -> None:
        self._layer = layer or InterceptionLayer()

    @property
    def layer(self) -> InterceptionLayer:
        return self._layer

    def install(self, specs: Sequence[InterceptorSpec]) -> set[Handle]:
        """Install specs in order, all or nothing.

        Args:
            specs: Specs to install; earlier specs take match precedence

        Returns:
            Handles of the installed interceptors

        Raises:
            InterceptorInstallationFailed: If any spec fails to install. Specs
                installed earlier in the same call are removed first.
        """
        installed: list[Handle] = []
        for index, spec in enumerate(specs):
            try:
                interceptor = self._layer.add(spec)
            except Exception as e:
                self.remove(installed)
                logger.error(
                    "Interceptor %d failed to install, rolled back %d: %s",
                    index,
                    len(installed),
                    e,
                )
                raise InterceptorInstallationFailed(
                    f"Interceptor at index {index} failed to install: {e}",
                    index=index,
                    cause=e,
                ) from e
            installed.append(Handle(interceptor.id))

        logger.debug("Installed %d interceptor(s)", len(installed))
        return set(installed)

    def remove(self, handles: Iterable[Handle]) -> None:
        """Remove interceptors. Unknown or already removed handles are ignored."""
        removed = 0
        for handle in handles:
            if self._layer.discard(handle.id):
                removed += 1
        logger.debug("Removed %d interceptor(s)", removed)

    def remove_everything(self) -> None:
        """Clear the whole layer, including interceptors added outside the engine."""
        count = self._layer.clear()
        logger.info("Removed all interceptors (%d live)", count)

    def installed(self, handle: Handle) -> bool:
        """Whether the handle's interceptor is still live."""
        return self._layer.get(handle.id) is not None

    def interceptor_count(self) -> int:
        """Number of interceptors live in the layer."""
        return len(self._layer)
