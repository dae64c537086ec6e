"""Tests for the item lifecycle orchestrator."""

import asyncio
import shlex

import pytest

from onboard.config import Item, ItemKind
from onboard.installer import (
    Action,
    ActivityKind,
    ItemStatus,
    MAX_TERMINAL_LINES,
    Orchestrator,
    Outcome,
)

from tests.conftest import brew_item, make_config, marker_item


class TestExampleScenarios:
    @pytest.mark.asyncio
    async def test_dependency_chain(self, make_orchestrator, marker_dir):
        """Test installing a dependent item only after its dependency."""
        a = marker_item(marker_dir, "a")
        b = marker_item(marker_dir, "b", depends_on="a")
        orchestrator = make_orchestrator(a, b)

        assert await orchestrator.check_all() == {"a": False, "b": False}

        rejected = await orchestrator.install("b")
        assert rejected.outcome is Outcome.REJECTED
        assert not (marker_dir / "b").exists()

        installed_a = await orchestrator.install("a")
        assert installed_a.outcome is Outcome.SUCCEEDED
        assert orchestrator.state("a").installed

        installed_b = await orchestrator.install("b")
        assert installed_b.outcome is Outcome.SUCCEEDED

        assert await orchestrator.check_all() == {"a": True, "b": True}
        await orchestrator.wait_for_enrichment()

    @pytest.mark.asyncio
    async def test_always_failing_item(self, make_orchestrator):
        """Test that a failing install is reported with stderr and logged."""
        item = Item(
            id="broken",
            name="Broken",
            check="which nonexistent-binary-xyz",
            install="echo 'no such package' >&2; false",
        )
        orchestrator = make_orchestrator(item)

        assert await orchestrator.check_one("broken") is False
        result = await orchestrator.install("broken")

        assert result.outcome is Outcome.FAILED
        assert not result.ok
        assert result.detail == "no such package"
        state = orchestrator.state("broken")
        assert not state.installed
        assert state.status is ItemStatus.CHECKED
        assert state.error_detail == "no such package"
        entry = orchestrator.store.activity.entries[0]
        assert entry.action is ActivityKind.FAILED
        assert entry.message == "Failed to install Broken"


class TestChecks:
    @pytest.mark.asyncio
    async def test_check_all_idempotent(self, make_orchestrator, marker_dir):
        """Test that repeated checks with no changes agree."""
        (marker_dir / "a").touch()
        orchestrator = make_orchestrator(
            marker_item(marker_dir, "a"), marker_item(marker_dir, "b")
        )

        first = await orchestrator.check_all()
        second = await orchestrator.check_all()

        assert first == second == {"a": True, "b": False}
        await orchestrator.wait_for_enrichment()

    @pytest.mark.asyncio
    async def test_check_one_enriches_brew_items(self, make_orchestrator, marker_dir):
        """Test that waiting for enrichment fills version details."""
        (marker_dir / "wget").write_text("1.0.0\n")
        orchestrator = make_orchestrator(brew_item("wget"))

        assert await orchestrator.check_one("wget", wait_for_enrichment=True)

        state = orchestrator.state("wget")
        assert state.version == "1.0.0"
        assert state.latest_version == "2.0.0"
        assert state.has_update

    @pytest.mark.asyncio
    async def test_background_enrichment(self, make_orchestrator, marker_dir):
        """Test that check_all returns before enrichment and can be joined."""
        (marker_dir / "wget").write_text("1.0.0\n")
        (marker_dir / ".slow").touch()
        orchestrator = make_orchestrator(brew_item("wget"))

        assert await orchestrator.check_all() == {"wget": True}

        state = orchestrator.state("wget")
        assert state.status is ItemStatus.CHECKED
        assert state.installed
        assert state.version is None
        assert orchestrator.is_enriching("wget")

        await orchestrator.wait_for_enrichment()

        state = orchestrator.state("wget")
        assert state.version == "1.0.0"
        assert state.has_update
        assert not orchestrator.is_enriching("wget")

    @pytest.mark.asyncio
    async def test_stale_enrichment_dropped_on_upgrade(self, make_orchestrator, marker_dir):
        """Test that a lookup started before an upgrade does not overwrite its result."""
        (marker_dir / "wget").write_text("1.0.0\n")
        slow = marker_dir / ".slow"
        slow.touch()
        orchestrator = make_orchestrator(brew_item("wget"))
        await orchestrator.check_all()
        assert orchestrator.is_enriching("wget")

        await asyncio.sleep(0.3)
        slow.unlink()
        result = await orchestrator.upgrade("wget")
        assert result.outcome is Outcome.SUCCEEDED

        await orchestrator.wait_for_enrichment()
        await asyncio.sleep(1.5)

        state = orchestrator.state("wget")
        assert state.version == "2.0.0"
        assert not state.has_update

    @pytest.mark.asyncio
    async def test_unknown_item(self, make_orchestrator):
        orchestrator = make_orchestrator()
        assert await orchestrator.check_one("ghost") is False


class TestInstall:
    @pytest.mark.asyncio
    async def test_install_then_check_round_trip(self, make_orchestrator, marker_dir):
        """Test that a successful install is confirmed by a later check."""
        orchestrator = make_orchestrator(brew_item("wget"))
        await orchestrator.check_all()

        result = await orchestrator.install("wget")

        assert result.outcome is Outcome.SUCCEEDED
        assert result.version == "1.0.0"
        assert result.message == "Installed Wget v1.0.0"
        assert await orchestrator.check_one("wget") is True
        await orchestrator.wait_for_enrichment()

    @pytest.mark.asyncio
    async def test_output_captured_per_correlation_id(self, make_orchestrator, marker_dir):
        """Test that streamed output lands in the item's terminal buffer."""
        marker = shlex.quote(str(marker_dir / "a"))
        item = marker_item(
            marker_dir, "a", install=f"echo step one; echo step two; touch {marker}"
        )
        orchestrator = make_orchestrator(item)

        await orchestrator.install("a")

        terminal = orchestrator.store.terminal(item.correlation_id)
        assert terminal.text() == "step one\nstep two"

    @pytest.mark.asyncio
    async def test_terminal_capped(self, make_orchestrator, marker_dir):
        """Test that long installs keep only the newest output lines."""
        marker = shlex.quote(str(marker_dir / "a"))
        item = marker_item(marker_dir, "a", install=f"seq 1 500; touch {marker}")
        orchestrator = make_orchestrator(item)

        await orchestrator.install("a")

        terminal = orchestrator.store.terminal(item.correlation_id)
        assert len(terminal) == MAX_TERMINAL_LINES
        assert terminal.last_line.text == "500"

    @pytest.mark.asyncio
    async def test_success_but_check_fails(self, make_orchestrator, marker_dir):
        """Test that an install whose check still fails is a failure."""
        item = marker_item(marker_dir, "a", install="echo done")
        orchestrator = make_orchestrator(item)

        result = await orchestrator.install("a")

        assert result.outcome is Outcome.FAILED
        assert result.detail == "install finished but check still fails"
        assert not orchestrator.state("a").installed

    @pytest.mark.asyncio
    async def test_unknown_item_rejected(self, make_orchestrator):
        result = await make_orchestrator().install("ghost")
        assert result.outcome is Outcome.REJECTED

    @pytest.mark.asyncio
    async def test_cancel_restores_prior_state(self, make_orchestrator, marker_dir, wait_until):
        """Test that cancelling leaves installed unchanged and logs nothing."""
        marker = shlex.quote(str(marker_dir / "slow"))
        item = marker_item(marker_dir, "slow", install=f"sleep 10; touch {marker}")
        orchestrator = make_orchestrator(item)
        await orchestrator.check_all()

        task = asyncio.create_task(orchestrator.install("slow"))
        await wait_until(lambda: orchestrator.executor.is_running(item.correlation_id))
        assert orchestrator.state("slow").status is ItemStatus.INSTALLING
        assert orchestrator.state("slow").action is Action.INSTALL

        assert orchestrator.cancel("slow") is True
        result = await asyncio.wait_for(task, timeout=5)

        assert result.outcome is Outcome.CANCELLED
        state = orchestrator.state("slow")
        assert not state.installed
        assert state.status is ItemStatus.CHECKED
        assert state.error_detail is None
        assert len(orchestrator.store.activity) == 0
        assert not (marker_dir / "slow").exists()

    @pytest.mark.asyncio
    async def test_reentrant_action_rejected(self, make_orchestrator, marker_dir, wait_until):
        """Test that a second action on a busy item spawns nothing."""
        item = marker_item(marker_dir, "slow", install="sleep 10")
        orchestrator = make_orchestrator(item)

        task = asyncio.create_task(orchestrator.install("slow"))
        await wait_until(lambda: orchestrator.is_busy("slow"))

        second = await orchestrator.install("slow")
        assert second.outcome is Outcome.REJECTED
        assert "in progress" in second.message

        orchestrator.cancel("slow")
        assert (await asyncio.wait_for(task, timeout=5)).outcome is Outcome.CANCELLED
        assert not orchestrator.is_busy("slow")

    def test_cancel_idle_item(self, make_orchestrator, marker_dir):
        orchestrator = make_orchestrator(marker_item(marker_dir, "a"))
        assert orchestrator.cancel("a") is False
        assert orchestrator.cancel("ghost") is False


class TestUninstall:
    @pytest.mark.asyncio
    async def test_uninstall_brew_item(self, make_orchestrator, marker_dir):
        """Test a confirmed uninstall through brew."""
        (marker_dir / "wget").write_text("1.0.0\n")
        orchestrator = make_orchestrator(brew_item("wget"))
        await orchestrator.check_one("wget", wait_for_enrichment=True)

        result = await orchestrator.uninstall("wget", "  DELETE ")

        assert result.outcome is Outcome.SUCCEEDED
        assert result.message == "Uninstalled Wget"
        assert not (marker_dir / "wget").exists()
        state = orchestrator.state("wget")
        assert not state.installed
        assert state.version is None

    @pytest.mark.asyncio
    async def test_wrong_phrase_rejected(self, make_orchestrator, marker_dir):
        (marker_dir / "wget").write_text("1.0.0\n")
        orchestrator = make_orchestrator(brew_item("wget"))
        await orchestrator.check_one("wget")

        result = await orchestrator.uninstall("wget", "yes")

        assert result.outcome is Outcome.REJECTED
        assert (marker_dir / "wget").exists()
        await orchestrator.wait_for_enrichment()

    @pytest.mark.asyncio
    async def test_not_installed_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator(brew_item("wget"))
        await orchestrator.check_one("wget")

        result = await orchestrator.uninstall("wget", "delete")

        assert result.outcome is Outcome.REJECTED

    @pytest.mark.asyncio
    async def test_not_derivable(self, make_orchestrator, marker_dir):
        """Test that a non-brew item fails without spawning or logging."""
        (marker_dir / "a").touch()
        orchestrator = make_orchestrator(marker_item(marker_dir, "a"))
        await orchestrator.check_one("a", wait_for_enrichment=True)

        result = await orchestrator.uninstall("a", "delete")

        assert result.outcome is Outcome.FAILED
        assert "no uninstall path available" in result.message
        assert orchestrator.state("a").error_detail == result.message
        assert orchestrator.state("a").installed
        assert len(orchestrator.store.activity) == 0

    @pytest.mark.asyncio
    async def test_failure_keeps_installed(self, make_orchestrator, marker_dir):
        """Test that a failed uninstall leaves the item installed."""
        item = Item(
            id="wget",
            name="Wget",
            check="true",
            install="brew install wget",
        )
        orchestrator = make_orchestrator(item)
        await orchestrator.check_one("wget", wait_for_enrichment=True)

        result = await orchestrator.uninstall("wget", "delete")

        assert result.outcome is Outcome.FAILED
        assert "No such keg" in result.detail
        assert orchestrator.state("wget").installed


class TestUpgrade:
    @pytest.mark.asyncio
    async def test_upgrade_brew_item(self, make_orchestrator, marker_dir):
        """Test that an upgrade logs the new version and clears the update."""
        (marker_dir / "wget").write_text("1.0.0\n")
        orchestrator = make_orchestrator(brew_item("wget"))
        await orchestrator.check_one("wget", wait_for_enrichment=True)
        assert orchestrator.state("wget").has_update

        result = await orchestrator.upgrade("wget")

        assert result.outcome is Outcome.SUCCEEDED
        assert result.message == "Upgraded Wget to v2.0.0"
        state = orchestrator.state("wget")
        assert state.version == "2.0.0"
        assert not state.has_update

    @pytest.mark.asyncio
    async def test_upgrade_all_available(self, make_orchestrator, marker_dir):
        """Test that only items reporting updates are upgraded."""
        (marker_dir / "wget").write_text("1.0.0\n")
        (marker_dir / "jq").write_text("2.0.0\n")
        orchestrator = make_orchestrator(brew_item("wget"), brew_item("jq"))
        await orchestrator.check_all()
        await orchestrator.wait_for_enrichment()

        results = await orchestrator.upgrade_all_available()

        assert [r.item_id for r in results] == ["wget"]
        assert results[0].ok

    @pytest.mark.asyncio
    async def test_upgrade_not_derivable(self, make_orchestrator, marker_dir):
        (marker_dir / "a").touch()
        orchestrator = make_orchestrator(marker_item(marker_dir, "a"))
        await orchestrator.check_one("a", wait_for_enrichment=True)

        result = await orchestrator.upgrade("a")

        assert result.outcome is Outcome.FAILED
        assert "no upgrade path available" in result.message


class TestInstallAllEligible:
    @pytest.mark.asyncio
    async def test_dependencies_installed_first(self, make_orchestrator, marker_dir, tmp_path):
        """Test that each item is attempted only after its dependency is installed."""
        log = shlex.quote(str(tmp_path / "order.log"))

        def logged(item_id, depends_on=None):
            marker = shlex.quote(str(marker_dir / item_id))
            return marker_item(
                marker_dir,
                item_id,
                depends_on=depends_on,
                install=f"echo {item_id} >> {log}; touch {marker}",
            )

        orchestrator = make_orchestrator(
            logged("app", "node"), logged("node", "brew"), logged("brew")
        )
        await orchestrator.check_all()

        results = await orchestrator.install_all_eligible()

        assert all(r.outcome is Outcome.SUCCEEDED for r in results)
        assert (tmp_path / "order.log").read_text().split() == ["brew", "node", "app"]

    @pytest.mark.asyncio
    async def test_skips_installed_unresolved_and_blocked(self, make_orchestrator, marker_dir):
        """Test that a single pass skips what it cannot install."""
        (marker_dir / "done").touch()
        orchestrator = make_orchestrator(
            marker_item(marker_dir, "done"),
            marker_item(marker_dir, "broken", install="false"),
            marker_item(marker_dir, "needs-broken", depends_on="broken"),
            marker_item(marker_dir, "orphan", depends_on="ghost"),
        )
        await orchestrator.check_all()

        results = {r.item_id: r for r in await orchestrator.install_all_eligible()}

        assert results["done"].outcome is Outcome.SKIPPED
        assert results["broken"].outcome is Outcome.FAILED
        assert results["needs-broken"].outcome is Outcome.SKIPPED
        assert results["orphan"].outcome is Outcome.SKIPPED
        assert "does not exist" in results["orphan"].message
        await orchestrator.wait_for_enrichment()

    @pytest.mark.asyncio
    async def test_kind_filter(self, make_orchestrator, marker_dir):
        """Test that apps can depend on tools but only apps are attempted."""
        (marker_dir / "brew").touch()
        orchestrator = make_orchestrator(
            marker_item(marker_dir, "brew"),
            marker_item(marker_dir, "cli"),
            marker_item(marker_dir, "editor", depends_on="brew", kind=ItemKind.APP),
        )
        await orchestrator.check_all()

        results = await orchestrator.install_all_eligible(ItemKind.APP)

        assert [r.item_id for r in results] == ["editor"]
        assert results[0].ok
        assert not (marker_dir / "cli").exists()
        await orchestrator.wait_for_enrichment()

    def test_plan_matches_batch(self, make_orchestrator, marker_dir):
        orchestrator = make_orchestrator(
            marker_item(marker_dir, "b", depends_on="a"),
            marker_item(marker_dir, "a"),
        )
        assert [i.id for i in orchestrator.plan_install_all()] == ["a", "b"]


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_replaces_registry(self, make_orchestrator, marker_dir, wait_until):
        """Test that reloading cancels running work and resets state."""
        item = marker_item(marker_dir, "slow", install="sleep 10")
        orchestrator = make_orchestrator(item)
        task = asyncio.create_task(orchestrator.install("slow"))
        await wait_until(lambda: orchestrator.executor.is_running(item.correlation_id))

        await orchestrator.load(make_config(marker_item(marker_dir, "fresh")))
        result = await asyncio.wait_for(task, timeout=5)

        assert result.outcome is Outcome.CANCELLED
        assert orchestrator.item("slow") is None
        assert orchestrator.state("fresh").status is ItemStatus.UNCHECKED
        assert not orchestrator.is_busy("slow")

    @pytest.mark.asyncio
    async def test_reused_id_stays_guarded(self, make_orchestrator, marker_dir, wait_until):
        """Test that an action abandoned by a reload cannot free a new action's slot."""
        item = marker_item(marker_dir, "slow", install="sleep 10")
        orchestrator = make_orchestrator(item)
        old = asyncio.create_task(orchestrator.install("slow"))
        await wait_until(lambda: orchestrator.executor.is_running(item.correlation_id))

        await orchestrator.load(make_config(marker_item(marker_dir, "slow", install="sleep 10")))
        current = asyncio.create_task(orchestrator.install("slow"))
        assert (await asyncio.wait_for(old, timeout=5)).outcome is Outcome.CANCELLED
        await wait_until(lambda: orchestrator.executor.is_running(item.correlation_id))

        assert orchestrator.is_busy("slow")
        third = await orchestrator.install("slow")
        assert third.outcome is Outcome.REJECTED

        orchestrator.cancel("slow")
        result = await asyncio.wait_for(current, timeout=5)
        assert result.outcome is Outcome.CANCELLED
        assert not orchestrator.is_busy("slow")
        assert len(orchestrator.store.activity) == 0

    def test_accepts_existing_store(self, executor, marker_dir):
        """Test that a caller-supplied store is populated on construction."""
        from onboard.installer import StateStore

        store = StateStore()
        orchestrator = Orchestrator(make_config(marker_item(marker_dir, "a")), executor, store)
        assert orchestrator.store is store
        assert "a" in store
