"""
Command-line interface for raidsync.

    raidsync resolve SESSION REQUEST_JSON --profiles DIR --tables DIR [--config YAML]
    raidsync inspect SESSION --profiles DIR
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..state import (
    GameTables,
    JsonProfileBackend,
    Profile,
    ProfileNotFoundError,
    ProfileStore,
    RaidOutcome,
    RaidOutcomeRequest,
    ReconciliationInProgressError,
    Traders,
    load_config,
)
from ..systems import create_controller

logger = logging.getLogger(__name__)

# Shared console instance
console = Console()

THEME = {
    "primary": "steel_blue",
    "secondary": "grey70",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "dim": "dim",
}


def _key_value_table(title: str) -> Table:
    table = Table(
        title=f"[bold {THEME['primary']}]{title}[/bold {THEME['primary']}]",
        show_header=False,
        box=None,
    )
    table.add_column("Key", style=THEME["dim"])
    table.add_column("Value", style=THEME["secondary"])
    return table


def show_outcome(outcome: RaidOutcome) -> None:
    table = _key_value_table(f"Raid outcome: {outcome.session_id}")
    table.add_row("Character", outcome.character.value)
    table.add_row("Exit", outcome.exit)
    dead = f"[{THEME['danger']}]yes[/{THEME['danger']}]" if outcome.dead else "no"
    table.add_row("Dead", dead)
    if outcome.skipped:
        table.add_row("Saved", f"[{THEME['warning']}]skipped (saving disabled)[/{THEME['warning']}]")
    table.add_row("Insured items captured", str(outcome.captured_items))
    table.add_row("Insurance parcels", str(outcome.scheduled_records))
    if outcome.fence_standing is not None:
        table.add_row("Fence standing", f"{outcome.fence_standing:.2f}")
    if outcome.scav_regenerated:
        table.add_row("Scav", "regenerated")
    console.print(table)


def show_profile(profile: Profile) -> None:
    pmc = profile.characters.pmc
    fence = pmc.traders_info.get(Traders.FENCE.value)

    table = _key_value_table(f"Profile: {profile.info.id}")
    table.add_row("Nickname", pmc.info.nickname or "-")
    table.add_row("Level", str(pmc.info.level))
    table.add_row("Experience", str(pmc.info.experience))
    table.add_row("Fence standing", f"{fence.standing:.2f}" if fence else "-")
    table.add_row("Items", str(len(pmc.inventory.items)))
    table.add_row("Insured items", str(len(pmc.insured_items)))
    table.add_row("In raid", f"{profile.inraid.location} ({profile.inraid.character.value})")

    scav = profile.characters.scav
    if scav is None:
        table.add_row("Scav", "-")
    else:
        remaining = scav.info.savage_lock_time - time.time()
        cooldown = f"{remaining:.0f}s" if remaining > 0 else "ready"
        table.add_row("Scav cooldown", cooldown)
    console.print(table)

    if profile.insurance:
        parcels = Table(title="Pending insurance", box=None)
        parcels.add_column("Trader", style=THEME["dim"])
        parcels.add_column("Items", justify="right")
        parcels.add_column("Due", style=THEME["secondary"])
        for record in profile.insurance:
            due = time.strftime("%Y-%m-%d %H:%M", time.localtime(record.scheduled_time))
            parcels.add_row(record.trader_id, str(len(record.items)), due)
        console.print(parcels)


def load_session_profile(store: ProfileStore, session_id: str) -> Profile | None:
    """Load a profile, reporting one that is unreadable even after repair."""
    try:
        return store.load_profile(session_id)
    except ValueError as e:
        console.print(f"[{THEME['danger']}]Unreadable profile:[/{THEME['danger']}] {e}")
        return None


def cmd_resolve(args: argparse.Namespace) -> int:
    config = load_config(args.config) if args.config else load_config()
    tables = GameTables.from_directory(args.tables)
    store = ProfileStore(JsonProfileBackend(args.profiles))
    if load_session_profile(store, args.session) is None:
        return 1

    try:
        data = json.loads(Path(args.request).read_text(encoding="utf-8"))
        request = RaidOutcomeRequest.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        console.print(f"[{THEME['danger']}]Invalid raid outcome request:[/{THEME['danger']}] {e}")
        return 1

    controller = create_controller(store, tables, config)
    outcome = controller.resolve(args.session, request)
    show_outcome(outcome)
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    store = ProfileStore(JsonProfileBackend(args.profiles))
    profile = load_session_profile(store, args.session)
    if profile is None:
        return 1
    show_profile(profile)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="raidsync",
        description="Reconcile raid outcomes into player profiles",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log debug output",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Apply a raid outcome request to a profile")
    resolve.add_argument("session", help="Session id")
    resolve.add_argument("request", help="Path to the raid outcome request JSON")
    resolve.add_argument("--profiles", default="profiles", help="Profile directory")
    resolve.add_argument("--tables", default="tables", help="Static table directory")
    resolve.add_argument("--config", help="Server config YAML")
    resolve.set_defaults(func=cmd_resolve)

    inspect = sub.add_parser("inspect", help="Summarize a stored profile")
    inspect.add_argument("session", help="Session id")
    inspect.add_argument("--profiles", default="profiles", help="Profile directory")
    inspect.set_defaults(func=cmd_inspect)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except ProfileNotFoundError as e:
        console.print(f"[{THEME['danger']}]Profile not found:[/{THEME['danger']}] {e.args[0]}")
        return 1
    except ReconciliationInProgressError as e:
        console.print(f"[{THEME['warning']}]Raid already resolving for {e}[/{THEME['warning']}]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
