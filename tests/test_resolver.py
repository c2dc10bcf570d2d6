"""Tests for dependency graph resolution."""

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from pawnctl_core.errors import (
    CircularDependencyError,
    InvalidManifest,
    ManifestMissing,
    OperationCancelled,
    UnresolvedVersionConflict,
)
from pawnctl_core.events import EventBus
from pawnctl_core.ledger import InstallLedger, InstallRecord
from pawnctl_core.manifest import ManifestFetcher
from pawnctl_core.reference import Tag, parse_reference
from pawnctl_core.resolver import DependencyResolver, ResolutionState, reconcile_versions


def _resolve(client, root: str, **kwargs):
    resolver_kwargs = {key: kwargs.pop(key) for key in ("ledger", "events", "cancel") if key in kwargs}
    resolver = DependencyResolver(ManifestFetcher(client), **resolver_kwargs)
    return resolver.resolve(parse_reference(root), **kwargs)


def test_plan_lists_dependencies_before_dependents(fake_client) -> None:
    fake_client.add_package("me/gamemode@main", dependencies=["me/a@v1.0.0", "me/b@v1.0.0"])
    fake_client.add_package("me/a@v1.0.0", dependencies=["me/c@v1.0.0"])
    fake_client.add_package("me/b@v1.0.0", dependencies=["me/c@v1.0.0"])
    fake_client.add_package("me/c@v1.0.0")

    plan = _resolve(fake_client, "me/gamemode@main")

    assert plan.describe() == ("me/c@v1.0.0", "me/a@v1.0.0", "me/b@v1.0.0", "me/gamemode@main")
    assert plan.root.package_name == "gamemode"
    assert all(node.state is ResolutionState.RESOLVED for node in plan)


def test_cycle_is_reported_from_first_occurrence(fake_client) -> None:
    fake_client.add_package("x/a@main", dependencies=["x/b@main"])
    fake_client.add_package("x/b@main", dependencies=["x/c@main"])
    fake_client.add_package("x/c@main", dependencies=["x/a@main"])

    with pytest.raises(CircularDependencyError) as excinfo:
        _resolve(fake_client, "x/a@main")

    assert excinfo.value.cycle == ("x/a", "x/b", "x/c", "x/a")
    assert fake_client.count("download", "x/a@main") == 0


def test_higher_tag_wins_and_is_reported(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/a@v1.0.0", "me/b@v1.0.0"])
    fake_client.add_package("me/a@v1.0.0", dependencies=["pblueg/mysql@v2.0.0"])
    fake_client.add_package("me/b@v1.0.0", dependencies=["pblueg/mysql@v1.5.0"])
    fake_client.add_package("pblueg/mysql@v2.0.0")
    fake_client.add_package("pblueg/mysql@v1.5.0")
    seen: list[dict] = []
    events = EventBus()
    events.on("version_upgrade", lambda event: seen.append(event.payload))

    plan = _resolve(fake_client, "me/root@main", events=events)

    assert "pblueg/mysql@v2.0.0" in plan.describe()
    assert "pblueg/mysql@v1.5.0" not in plan.describe()
    assert len(plan.upgrades) == 1
    assert plan.upgrades[0].selected == parse_reference("pblueg/mysql@v2.0.0")
    assert seen == [
        {
            "identity": "pblueg/mysql",
            "requested": "pblueg/mysql@v1.5.0",
            "selected": "pblueg/mysql@v2.0.0",
        }
    ]


def test_later_higher_tag_replaces_earlier_winner(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/b@v1.0.0", "me/a@v1.0.0"])
    fake_client.add_package("me/b@v1.0.0", dependencies=["pblueg/mysql@v1.5.0"])
    fake_client.add_package("me/a@v1.0.0", dependencies=["pblueg/mysql@v2.0.0"])
    fake_client.add_package("pblueg/mysql@v1.5.0")
    fake_client.add_package("pblueg/mysql@v2.0.0", dependencies=["me/util@v1.0.0"])
    fake_client.add_package("me/util@v1.0.0")

    plan = _resolve(fake_client, "me/root@main")

    order = plan.describe()
    assert "pblueg/mysql@v1.5.0" not in order
    assert order.index("me/util@v1.0.0") < order.index("pblueg/mysql@v2.0.0")
    assert order.index("pblueg/mysql@v2.0.0") < order.index("me/b@v1.0.0")
    assert order[-1] == "me/root@main"
    assert plan.upgrades[0].requested == parse_reference("pblueg/mysql@v1.5.0")


def test_branch_against_tag_is_unresolvable(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/a@v1.0.0", "me/b@v1.0.0"])
    fake_client.add_package("me/a@v1.0.0", dependencies=["pblueg/mysql@branch-x"])
    fake_client.add_package("me/b@v1.0.0", dependencies=["pblueg/mysql@v1.0.0"])
    fake_client.add_package("pblueg/mysql@branch-x")
    fake_client.add_package("pblueg/mysql@v1.0.0")

    with pytest.raises(UnresolvedVersionConflict) as excinfo:
        _resolve(fake_client, "me/root@main")

    assert excinfo.value.identity == "pblueg/mysql"


def test_reconcile_refuses_two_branches() -> None:
    with pytest.raises(UnresolvedVersionConflict):
        reconcile_versions(
            "o/r", parse_reference("o/r@main"), parse_reference("o/r@develop")
        )
    winner = reconcile_versions("o/r", parse_reference("o/r@v1.0.0"), parse_reference("o/r@v1.0.1"))
    assert winner.ref == Tag("v1.0.1")


def test_resolution_is_idempotent(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/a@v1.0.0", "me/b@v1.0.0"])
    fake_client.add_package("me/a@v1.0.0", dependencies=["me/c@v1.0.0"])
    fake_client.add_package("me/b@v1.0.0")
    fake_client.add_package("me/c@v1.0.0")

    first = _resolve(fake_client, "me/root@main")
    second = _resolve(fake_client, "me/root@main")

    assert first.describe() == second.describe()


def test_concurrent_prefetch_keeps_declared_order(fake_client) -> None:
    deps = [f"me/dep{i}@v1.0.{i}" for i in range(6)]
    fake_client.add_package("me/root@main", dependencies=deps)
    for dep in deps:
        fake_client.add_package(dep)

    with ThreadPoolExecutor(max_workers=4) as pool:
        plan = DependencyResolver(ManifestFetcher(fake_client, executor=pool)).resolve(
            parse_reference("me/root@main")
        )

    assert plan.describe() == (*deps, "me/root@main")


def test_missing_manifest_dependency_is_a_leaf(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/plain@v1.0.0"])
    fake_client.add_package("me/plain@v1.0.0", manifest_format="none")

    plan = _resolve(fake_client, "me/root@main")

    leaf = plan.nodes[0]
    assert leaf.manifest.bare
    assert leaf.children == []
    assert plan.describe() == ("me/plain@v1.0.0", "me/root@main")


def test_missing_root_manifest_is_reported(fake_client) -> None:
    fake_client.add_package("me/plain@main", manifest_format="none")
    with pytest.raises(ManifestMissing):
        _resolve(fake_client, "me/plain@main")
    plan = _resolve(fake_client, "me/plain@main", require_root_manifest=False)
    assert plan.describe() == ("me/plain@main",)


def test_unresolved_dependencies_use_default_branch(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/lib"])
    fake_client.add_package("me/lib", default_branch="trunk")

    plan = _resolve(fake_client, "me/root@main")

    assert plan.describe() == ("me/lib@trunk", "me/root@main")


def test_without_dependencies_only_root_is_planned(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/a@v1.0.0"])
    plan = _resolve(fake_client, "me/root@main", include_dependencies=False)
    assert plan.describe() == ("me/root@main",)


def test_invalid_dependency_string_is_a_manifest_error(fake_client) -> None:
    fake_client.add_package("me/root@main", dependencies=["not a reference"])
    with pytest.raises(InvalidManifest):
        _resolve(fake_client, "me/root@main")


def test_installed_dependency_is_not_descended(fake_client, tmp_path: Path) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/a@v1.0.0"])
    fake_client.add_package("me/a@v1.0.0", dependencies=["me/b@v1.0.0"])
    fake_client.add_package("me/b@v1.0.0")
    ledger = InstallLedger(tmp_path / "ledger.json")
    ledger.put(InstallRecord(package_name="a", locator="me/a@v1.0.0", install_path=str(tmp_path / "a")))

    plan = _resolve(fake_client, "me/root@main", ledger=ledger)
    assert plan.nodes[0].satisfied
    assert plan.describe() == ("me/a@v1.0.0", "me/root@main")

    forced = _resolve(fake_client, "me/root@main", ledger=ledger, force=True)
    assert not forced.nodes[1].satisfied


def test_cancellation_stops_resolution(fake_client) -> None:
    fake_client.add_package("me/root@main")
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelled):
        _resolve(fake_client, "me/root@main", cancel=cancel)


def _superseded_subtree_graph(fake_client, order: list[str]) -> None:
    fake_client.add_package("me/root@main", dependencies=order)
    fake_client.add_package("me/a@v1.0.0", dependencies=["p/mysql@v1.0.0"])
    fake_client.add_package("me/b@v1.0.0", dependencies=["p/mysql@v2.0.0"])
    fake_client.add_package("me/c@v1.0.0", dependencies=["p/foo@v1.0.0"])
    fake_client.add_package("p/mysql@v1.0.0", dependencies=["p/foo@branch-x"])
    fake_client.add_package("p/mysql@v2.0.0")
    fake_client.add_package("p/foo@branch-x")
    fake_client.add_package("p/foo@v1.0.0")


@pytest.mark.parametrize(
    "order",
    [
        ["me/a@v1.0.0", "me/b@v1.0.0", "me/c@v1.0.0"],
        ["me/b@v1.0.0", "me/a@v1.0.0", "me/c@v1.0.0"],
        ["me/a@v1.0.0", "me/c@v1.0.0", "me/b@v1.0.0"],
    ],
)
def test_superseded_version_subtree_is_dropped(fake_client, order: list[str]) -> None:
    _superseded_subtree_graph(fake_client, order)

    plan = _resolve(fake_client, "me/root@main")

    assert set(plan.describe()) == {
        "p/mysql@v2.0.0",
        "p/foo@v1.0.0",
        "me/a@v1.0.0",
        "me/b@v1.0.0",
        "me/c@v1.0.0",
        "me/root@main",
    }
    assert [(str(d.requested), str(d.selected)) for d in plan.upgrades] == [
        ("p/mysql@v1.0.0", "p/mysql@v2.0.0")
    ]
    order_seen = plan.describe()
    assert order_seen.index("p/mysql@v2.0.0") < order_seen.index("me/a@v1.0.0")
    assert order_seen.index("p/foo@v1.0.0") < order_seen.index("me/c@v1.0.0")


def test_upgrade_events_are_emitted_once_per_decision(fake_client) -> None:
    _superseded_subtree_graph(fake_client, ["me/a@v1.0.0", "me/b@v1.0.0", "me/c@v1.0.0"])
    events = EventBus()
    upgrades: list[dict] = []
    resolved: list[str] = []
    events.on("version_upgrade", lambda event: upgrades.append(event.payload))
    events.on("package_resolved", lambda event: resolved.append(event.payload["locator"]))

    plan = _resolve(fake_client, "me/root@main", events=events)

    assert len(upgrades) == 1
    assert tuple(resolved) == plan.describe()


def test_conflict_inside_the_winning_graph_still_fails(fake_client) -> None:
    _superseded_subtree_graph(fake_client, ["me/a@v1.0.0", "me/b@v1.0.0", "me/c@v1.0.0"])
    fake_client.add_package("p/mysql@v2.0.0", dependencies=["p/foo@branch-x"])

    with pytest.raises(UnresolvedVersionConflict) as excinfo:
        _resolve(fake_client, "me/root@main")

    assert excinfo.value.identity == "p/foo"


def test_installed_dependency_is_not_prefetched(fake_client, tmp_path: Path) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/dep@v1.0.0", "me/other@v1.0.0"])
    fake_client.add_package("me/dep@v1.0.0", dependencies=["me/deeper@v1.0.0"])
    fake_client.add_package("me/other@v1.0.0")
    ledger = InstallLedger(tmp_path / "ledger.json")
    ledger.put(InstallRecord(package_name="dep", locator="me/dep@v1.0.0", install_path=str(tmp_path / "dep")))

    with ThreadPoolExecutor(max_workers=4) as pool:
        resolver = DependencyResolver(ManifestFetcher(fake_client, executor=pool), ledger=ledger)
        plan = resolver.resolve(parse_reference("me/root@main"))

    assert [node.satisfied for node in plan] == [True, False, False]
    assert fake_client.count("file", "me/dep@v1.0.0/pawn.json") == 0
    assert fake_client.count("file", "me/other@v1.0.0/pawn.json") == 1
