"""Item lifecycle orchestration: check, install, uninstall and upgrade.

The orchestrator is the only writer of the :class:`StateStore`. Every public
operation returns an :class:`ActionResult` (or a plain value for checks) and
never raises for command failures: success, failure and cancellation all end
up as store updates plus, for finished actions, an activity log entry.

Per item the lifecycle is::

    UNCHECKED -> CHECKING -> CHECKED(installed | missing)
    CHECKED --install/uninstall/upgrade--> INSTALLING -> CHECKING -> CHECKED

A cancelled action skips the re-check and restores the previous checked state.
"""

import asyncio
import logging

from ..config import Item, ItemKind, OnboardConfig
from ..execution import OutputEvent, ProcessExecutor
from .dependencies import find_unresolved, is_eligible, plan_batch, resolve_order
from .models import (
    Action,
    ActionResult,
    ActivityKind,
    ItemState,
    ItemStatus,
    Outcome,
)
from .packages import derive_uninstall_command, derive_upgrade_command
from .store import StateStore
from .versions import get_version_info

CONFIRMATION_PHRASE = "delete"

_logging = logging.getLogger(__name__)


def confirms_removal(confirmation: str | None) -> bool:
    return (confirmation or "").strip().lower() == CONFIRMATION_PHRASE


class Orchestrator:
    def __init__(
        self,
        config: OnboardConfig,
        executor: ProcessExecutor | None = None,
        store: StateStore | None = None,
    ) -> None:
        self.executor = executor or ProcessExecutor()
        self.store = store or StateStore()
        self._config = config
        self._generation = 0
        self._in_flight: set[str] = set()
        self._enrichment: dict[str, asyncio.Task] = {}
        self._unsubscribe = self.executor.bus.subscribe(None, self._on_output)
        self.store.register(config.items)

    @property
    def config(self) -> OnboardConfig:
        return self._config

    def close(self) -> None:
        self._unsubscribe()

    def _on_output(self, event: OutputEvent) -> None:
        self.store.append_output(event.correlation_id, event.data, event.stream)

    def item(self, item_id: str) -> Item | None:
        return self._config.get(item_id)

    def state(self, item_id: str) -> ItemState | None:
        return self.store.get(item_id)

    def is_eligible(self, item_id: str) -> bool:
        item = self.item(item_id)
        return item is not None and is_eligible(item, self.store)

    def is_busy(self, item_id: str) -> bool:
        return item_id in self._in_flight

    def is_enriching(self, item_id: str) -> bool:
        task = self._enrichment.get(item_id)
        return task is not None and not task.done()

    @property
    def unresolved(self) -> dict[str, str]:
        return find_unresolved(self._config.items)

    def plan_install_all(self, kind: ItemKind | None = None) -> list[Item]:
        planned = plan_batch(self._config.items, self.store)
        return [item for item in planned if kind is None or item.kind is kind]

    async def load(self, config: OnboardConfig) -> None:
        """Replace the item registry, abandoning any running work."""
        self._generation += 1
        cancelled = self.executor.cancel_all()
        if cancelled:
            _logging.info(f"Cancelled {cancelled} running process(es) on config reload")
        for task in list(self._enrichment.values()):
            task.cancel()
        self._enrichment.clear()
        self._in_flight.clear()
        self._config = config
        self.store.register(config.items)

    # -- checks -----------------------------------------------------------

    def _current(self, generation: int) -> bool:
        return generation == self._generation

    async def _check_fast(self, item: Item, generation: int) -> bool:
        result = await self.executor.run_buffered(item.check)
        if self._current(generation):
            self.store.set_installed(item.id, result.succeeded)
        return result.succeeded

    async def _enrich(self, item: Item, generation: int) -> None:
        try:
            info = await get_version_info(item, self.executor)
        except Exception as e:
            _logging.debug(f"Version lookup failed for {item.id}: {type(e).__name__}: {e}")
            return
        state = self.store.get(item.id)
        if not self._current(generation) or state is None or not state.installed:
            return
        self.store.merge_enrichment(
            item.id, info.version, info.latest_version, info.has_update
        )

    def _schedule_enrichment(self, item: Item) -> None:
        self._supersede_enrichment(item.id)
        task = asyncio.create_task(self._enrich(item, self._generation))
        self._enrichment[item.id] = task

        def forget(done: asyncio.Task) -> None:
            if self._enrichment.get(item.id) is done:
                del self._enrichment[item.id]

        task.add_done_callback(forget)

    def _supersede_enrichment(self, item_id: str) -> None:
        task = self._enrichment.pop(item_id, None)
        if task is not None and not task.done():
            _logging.debug(f"Dropping stale version lookup for {item_id}")
            task.cancel()

    async def wait_for_enrichment(self) -> None:
        while self._enrichment:
            await asyncio.gather(*list(self._enrichment.values()), return_exceptions=True)

    async def _recheck(self, item: Item, generation: int) -> bool:
        self.store.set_status(item.id, ItemStatus.CHECKING)
        installed = await self._check_fast(item, generation)
        if installed and self._current(generation):
            await self._enrich(item, generation)
        return installed

    async def check_one(self, item_id: str, wait_for_enrichment: bool = False) -> bool:
        """Check whether an item is installed.

        Version details are fetched in the background unless
        ``wait_for_enrichment`` is set. An item with an action in progress is
        not re-checked; its last known state is returned.
        """
        item = self.item(item_id)
        if item is None:
            _logging.warning(f"Unknown item '{item_id}'")
            return False
        if item.id in self._in_flight:
            return self.store.get(item.id).installed

        generation = self._generation
        if wait_for_enrichment:
            return await self._recheck(item, generation)

        self.store.set_status(item.id, ItemStatus.CHECKING)
        installed = await self._check_fast(item, generation)
        if installed and self._current(generation):
            self._schedule_enrichment(item)
        return installed

    async def check_all(self) -> dict[str, bool]:
        """Check every item concurrently, then enrich installed ones in the background.

        Returns once every check has finished; version enrichment keeps running
        and can be joined with :meth:`wait_for_enrichment`.
        """
        generation = self._generation
        items = [item for item in self._config.items if item.id not in self._in_flight]
        for item in items:
            self.store.set_status(item.id, ItemStatus.CHECKING)

        results = await asyncio.gather(
            *(self._check_fast(item, generation) for item in items)
        )

        if self._current(generation):
            for item, installed in zip(items, results):
                if installed:
                    self._schedule_enrichment(item)

        return {item.id: installed for item, installed in zip(items, results)}

    # -- actions ----------------------------------------------------------

    def _admit(self, item_id: str, action: Action) -> tuple[Item | None, ActionResult | None]:
        item = self.item(item_id)
        if item is None:
            return None, ActionResult(
                item_id, action, Outcome.REJECTED, f"Unknown item '{item_id}'"
            )
        if item.id in self._in_flight:
            return item, ActionResult(
                item.id,
                action,
                Outcome.REJECTED,
                f"{item.name} already has an operation in progress",
            )
        return item, None

    def _reject(self, item: Item, action: Action, message: str) -> ActionResult:
        _logging.warning(message)
        return ActionResult(item.id, action, Outcome.REJECTED, message)

    def _not_derivable(self, item: Item, action: Action) -> ActionResult:
        message = f"Cannot {action.value} {item.name}: no {action.value} path available"
        _logging.warning(message)
        self.store.set_error(item.id, message)
        return ActionResult(item.id, action, Outcome.FAILED, message)

    def _fail(
        self,
        item: Item,
        action: Action,
        installed: bool,
        detail: str | None,
    ) -> ActionResult:
        detail = (detail or "").strip() or None
        self.store.set_installed(item.id, installed)
        self.store.set_error(item.id, detail)
        self.store.log_activity(ActivityKind.FAILED, f"{action.value} {item.name}")
        message = f"Failed to {action.value} {item.name}"
        _logging.error(f"{message}: {detail}" if detail else message)
        return ActionResult(item.id, action, Outcome.FAILED, message, detail=detail)

    async def _perform(self, item: Item, action: Action, command: str) -> ActionResult:
        generation = self._generation
        prior = self.store.get(item.id)
        prior_installed = prior.installed
        prior_latest = prior.latest_version

        self._in_flight.add(item.id)
        self._supersede_enrichment(item.id)
        try:
            self.store.clear_terminal(item.correlation_id)
            self.store.set_error(item.id, None)
            self.store.set_status(item.id, ItemStatus.INSTALLING, action)
            _logging.info(f"{action.progressive} {item.name}...")

            result = await self.executor.run_streaming(command, item.correlation_id)

            if not self._current(generation):
                return ActionResult(
                    item.id, action, Outcome.CANCELLED, "Configuration was reloaded"
                )
            if result.cancelled:
                self.store.set_installed(item.id, prior_installed)
                message = f"{action.progressive} {item.name} cancelled"
                _logging.info(message)
                return ActionResult(item.id, action, Outcome.CANCELLED, message)
            if not result.succeeded:
                return self._fail(
                    item, action, prior_installed, result.stderr or result.stdout
                )
            return await self._confirm(item, action, generation, prior_latest)
        except asyncio.CancelledError:
            if self._current(generation):
                self.store.set_installed(item.id, prior_installed)
            raise
        except Exception as e:
            _logging.exception(f"Unexpected error during {action.value} of {item.id}")
            if not self._current(generation):
                return ActionResult(item.id, action, Outcome.FAILED, str(e))
            return self._fail(item, action, prior_installed, f"{type(e).__name__}: {e}")
        finally:
            # after a reload the marker belongs to the new registry
            if self._current(generation):
                self._in_flight.discard(item.id)

    async def _confirm(
        self,
        item: Item,
        action: Action,
        generation: int,
        prior_latest: str | None,
    ) -> ActionResult:
        """Re-check after a successful command and record the outcome."""
        installed = await self._recheck(item, generation)
        if not self._current(generation):
            return ActionResult(
                item.id, action, Outcome.CANCELLED, "Configuration was reloaded"
            )
        version = self.store.get(item.id).version

        if action is Action.INSTALL:
            if not installed:
                return self._fail(
                    item, action, False, "install finished but check still fails"
                )
            entry = self.store.log_activity(ActivityKind.INSTALLED, item.name, version)
        elif action is Action.UNINSTALL:
            if installed:
                return self._fail(
                    item, action, True, f"uninstall finished but {item.name} is still present"
                )
            entry = self.store.log_activity(ActivityKind.UNINSTALLED, item.name)
        elif action is Action.UPGRADE:
            if not installed:
                return self._fail(
                    item, action, False, "upgrade finished but check fails"
                )
            version = version or prior_latest
            entry = self.store.log_activity(ActivityKind.UPGRADED, item.name, version)
        else:
            raise ValueError(f"Unhandled action: {action}")

        return ActionResult(
            item.id, action, Outcome.SUCCEEDED, entry.message, version=version
        )

    async def install(self, item_id: str) -> ActionResult:
        item, rejection = self._admit(item_id, Action.INSTALL)
        if rejection:
            return rejection
        if not is_eligible(item, self.store):
            return self._reject(
                item,
                Action.INSTALL,
                f"{item.name} requires '{item.depends_on}' to be installed first",
            )
        return await self._perform(item, Action.INSTALL, item.install)

    async def uninstall(self, item_id: str, confirmation: str | None) -> ActionResult:
        """Remove an item; ``confirmation`` must be the typed phrase ``delete``."""
        item, rejection = self._admit(item_id, Action.UNINSTALL)
        if rejection:
            return rejection
        if not confirms_removal(confirmation):
            return self._reject(
                item,
                Action.UNINSTALL,
                f"Type '{CONFIRMATION_PHRASE}' to confirm removing {item.name}",
            )
        if not self.store.get(item.id).installed:
            return self._reject(item, Action.UNINSTALL, f"{item.name} is not installed")

        command = derive_uninstall_command(item.install)
        if command is None:
            return self._not_derivable(item, Action.UNINSTALL)
        return await self._perform(item, Action.UNINSTALL, command)

    async def upgrade(self, item_id: str) -> ActionResult:
        item, rejection = self._admit(item_id, Action.UPGRADE)
        if rejection:
            return rejection
        if not self.store.get(item.id).installed:
            return self._reject(item, Action.UPGRADE, f"{item.name} is not installed")

        command = derive_upgrade_command(item.install)
        if command is None:
            return self._not_derivable(item, Action.UPGRADE)
        return await self._perform(item, Action.UPGRADE, command)

    async def install_all_eligible(self, kind: ItemKind | None = None) -> list[ActionResult]:
        """Install every missing item in dependency order, one at a time.

        A single pass: items whose dependency is not installed when they are
        reached are skipped, not retried.
        """
        generation = self._generation
        results: list[ActionResult] = []

        for item in resolve_order(self._config.items):
            if not self._current(generation):
                break
            if kind is not None and item.kind is not kind:
                continue
            if self.store.get(item.id).installed:
                results.append(
                    ActionResult(
                        item.id, Action.INSTALL, Outcome.SKIPPED, f"{item.name} is already installed"
                    )
                )
                continue
            if not is_eligible(item, self.store):
                results.append(
                    ActionResult(
                        item.id,
                        Action.INSTALL,
                        Outcome.SKIPPED,
                        f"{item.name} skipped: '{item.depends_on}' is not installed",
                    )
                )
                continue
            result = await self.install(item.id)
            results.append(result)
            if result.outcome is Outcome.CANCELLED:
                _logging.info("Batch install stopped after cancellation")
                return results

        for item_id, reason in self.unresolved.items():
            item = self.item(item_id)
            if kind is None or item.kind is kind:
                results.append(
                    ActionResult(
                        item_id, Action.INSTALL, Outcome.SKIPPED, f"{item.name} skipped: {reason}"
                    )
                )

        return results

    async def upgrade_all_available(self) -> list[ActionResult]:
        """Upgrade, one at a time, every installed item reporting an update."""
        results = []
        for item in self._config.items:
            state = self.store.get(item.id)
            if state.installed and state.has_update:
                results.append(await self.upgrade(item.id))
        return results

    def cancel(self, item_id: str) -> bool:
        item = self.item(item_id)
        if item is None:
            return False
        return self.executor.cancel(item.correlation_id)

    def cancel_all(self) -> int:
        return self.executor.cancel_all()


__all__ = [
    "CONFIRMATION_PHRASE",
    "confirms_removal",
    "Orchestrator",
]
