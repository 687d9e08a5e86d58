"""Capability manager - loads map capabilities and switches them on and off.

    load(specs) -> activate(ctx_factory) -> [running] -> deactivate()
                        ^                                    |
                        +------------ map remounted ---------+

Capabilities are loaded from ``"package.module:ClassName"`` specs (see
``settings.capabilities``) or registered directly. A spec that fails to
import lands in ``failed_specs``; a capability that fails to start, or
whose dependency is not running, lands in ``unavailable``. Either way the
editor falls back to a reduced mode rather than refusing to open the map.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
from typing import Callable

from loguru import logger

from planmap.errors import CapabilityDependencyError
from planmap.plugins.base import CapabilityContext, CapabilityInterface


class CapabilityManager:
    """Holds the capabilities of one map and tracks which are running."""

    def __init__(self) -> None:
        self._plugins: dict[str, CapabilityInterface] = {}
        self._configured: set[str] = set()
        self._running: list[str] = []
        self.unavailable: dict[str, str] = {}
        self.failed_specs: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, plugin: CapabilityInterface) -> None:
        """Register a capability instance.

        Raises ValueError if a capability with the same ID is already registered.
        """
        pid = plugin.plugin_id
        if pid in self._plugins:
            raise ValueError(
                f"Capability '{pid}' already registered "
                f"(existing: {self._plugins[pid].name})"
            )
        self._plugins[pid] = plugin
        logger.info(f"Capability registered: {pid} ({plugin.name} v{plugin.version})")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, specs: list[str]) -> list[CapabilityInterface]:
        """Import and register capabilities from ``module:Class`` specs.

        Each import yields to the event loop first so a long chain of
        loads does not starve other work. Failures are logged and kept in
        ``failed_specs``; they never raise.
        """
        loaded: list[CapabilityInterface] = []
        for spec in specs:
            await asyncio.sleep(0)
            plugin = self._load_spec(spec)
            if plugin is None:
                continue
            try:
                self.register(plugin)
            except ValueError as e:
                logger.warning(str(e))
                continue
            loaded.append(plugin)
        return loaded

    def _load_spec(self, spec: str) -> CapabilityInterface | None:
        module_name, _, class_name = spec.partition(":")
        try:
            module = importlib.import_module(module_name)
            cls = getattr(module, class_name) if class_name else None
            if not (
                inspect.isclass(cls)
                and issubclass(cls, CapabilityInterface)
                and not inspect.isabstract(cls)
            ):
                raise TypeError(f"{spec} is not a concrete CapabilityInterface")
            return cls()
        except Exception as e:
            logger.warning(f"Capability load failed: {spec}: {e}")
            self.failed_specs[spec] = str(e)
            return None

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def activate(self, ctx_factory: Callable[[str], CapabilityContext]) -> list[str]:
        """Start every registered capability whose dependencies are running.

        Capabilities are configured the first time they are activated only,
        so a map that is unmounted and mounted again gets its capabilities
        back without a second ``configure``. A capability that raises, or
        whose dependency is not running, is recorded in ``unavailable``.

        Returns:
            IDs of the capabilities running afterwards, in start order.

        Raises:
            CapabilityDependencyError: the dependency graph has a cycle.
        """
        order = self._start_order()

        for pid in order:
            if pid in self._running:
                continue
            plugin = self._plugins[pid]
            blocked = [d for d in plugin.dependencies if d not in self._running]
            if blocked:
                self._mark_unavailable(pid, f"dependency not running: {', '.join(blocked)}")
                continue
            try:
                if pid not in self._configured:
                    plugin.configure(ctx_factory(pid))
                    self._configured.add(pid)
                plugin.start()
            except Exception as e:
                self._mark_unavailable(pid, str(e))
                continue
            self._running.append(pid)
            self.unavailable.pop(pid, None)
            logger.info(f"Capability started: {pid}")

        return list(self._running)

    def deactivate(self) -> None:
        """Stop running capabilities, dependents first."""
        for pid in reversed(list(self._running)):
            self._running.remove(pid)
            try:
                self._plugins[pid].stop()
                logger.info(f"Capability stopped: {pid}")
            except Exception as e:
                logger.error(f"Capability '{pid}' failed to stop: {e}")

    def _mark_unavailable(self, pid: str, reason: str) -> None:
        logger.warning(f"Capability '{pid}' unavailable: {reason}")
        self.unavailable[pid] = reason

    def _start_order(self) -> list[str]:
        """Registered IDs with every dependency ahead of its dependents.

        Dependencies that were never registered are left out here and
        reported by activate().
        """
        order: list[str] = []
        visiting: set[str] = set()

        def visit(pid: str) -> None:
            if pid in order:
                return
            if pid in visiting:
                raise CapabilityDependencyError(f"Circular capability dependency at '{pid}'")
            visiting.add(pid)
            for dep in self._plugins[pid].dependencies:
                if dep in self._plugins:
                    visit(dep)
            visiting.discard(pid)
            order.append(pid)

        for pid in sorted(self._plugins):
            visit(pid)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_plugin(self, plugin_id: str) -> CapabilityInterface | None:
        return self._plugins.get(plugin_id)

    def provider(self, capability: str) -> CapabilityInterface | None:
        """First running capability that provides ``capability``, or None."""
        for pid in self._running:
            if capability in self._plugins[pid].capabilities:
                return self._plugins[pid]
        return None

    def available(self, capability: str) -> bool:
        return self.provider(capability) is not None

    def describe(self) -> list[dict]:
        """One entry per registered capability, for the capabilities API."""
        result = []
        for pid, plugin in self._plugins.items():
            running = pid in self._running
            if running:
                status = "running"
            elif pid in self.unavailable:
                status = "unavailable"
            else:
                status = "stopped"
            result.append({
                "id": pid,
                "name": plugin.name,
                "version": plugin.version,
                "capabilities": sorted(plugin.capabilities),
                "dependencies": list(plugin.dependencies),
                "status": status,
                "reason": self.unavailable.get(pid),
                "healthy": running and plugin.healthy,
            })
        return result

    def health(self) -> dict[str, bool]:
        return {pid: self._plugins[pid].healthy for pid in self._running}
