"""
Reputation Report — a player's standing across the colony.

Prints population-weighted approval per province and, with --cohorts, the
player's best and worst cohorts with their most recent history entries.

Usage:
    python -m polsim.reputation.report PLAYER_ID
    python -m polsim.reputation.report PLAYER_ID --database-url sqlite:///polsim.db
    python -m polsim.reputation.report PLAYER_ID --cohorts 10
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from rich.console import Console
from rich.table import Table

from polsim.config import settings
from polsim.reputation.service import ReputationService
from polsim.storage.service import SqlStore

console = Console()


def _approval_style(approval: float) -> str:
    if approval >= 60:
        return "green"
    if approval < 30:
        return "red"
    return "yellow"


async def run_report(database_url: str, player_id: str, cohorts: int = 0) -> bool:
    """
    Print a player's reputation breakdown.

    Args:
        database_url: SQLAlchemy connection string.
        player_id: Player to report on.
        cohorts: Number of best and worst cohorts to list (0 to skip).

    Returns:
        True if the player has any reputation records, False otherwise.
    """
    console.print(f"\n[bold blue]═══ Reputation Report: {player_id} ═══[/bold blue]\n")

    store = SqlStore(database_url)
    store.initialize()
    service = ReputationService(store)

    records = await store.list_reputations(player_id=player_id)
    console.print(f"  Cohort records: [bold]{len(records)}[/bold]")
    if not records:
        console.print("[yellow]⚠ No reputation records for this player[/yellow]\n")
        return False

    table = Table(title="Approval by province", show_lines=False)
    table.add_column("Province", style="cyan")
    table.add_column("Approval", justify="right")
    table.add_column("Population", justify="right")
    table.add_column("Cohorts", justify="right", style="dim")

    for row in await service.reputation_by_province(player_id):
        style = _approval_style(row.approval)
        table.add_row(
            row.province,
            f"[{style}]{row.approval:.1f}[/{style}]",
            f"{row.population:,}",
            str(row.cohorts),
        )
    console.print(table)

    if cohorts:
        ranked = sorted(records, key=lambda r: r.approval, reverse=True)
        shown = ranked[:cohorts] + [r for r in ranked[-cohorts:] if r not in ranked[:cohorts]]

        detail = Table(title="Best and worst cohorts", show_lines=True)
        detail.add_column("Cohort", style="cyan", width=48)
        detail.add_column("Approval", justify="right", width=9)
        detail.add_column("Last change", width=40)
        detail.add_column("Turn", justify="right", width=6)

        for record in shown:
            last = record.history[-1] if record.history else None
            style = _approval_style(record.approval)
            detail.add_row(
                record.cohort_id,
                f"[{style}]{record.approval:.1f}[/{style}]",
                f"{last.change:+.2f} {last.reason}" if last else "—",
                str(record.turn_updated),
            )
        console.print(detail)

    console.print("\n[bold blue]═══ Report Complete ═══[/bold blue]\n")
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Player reputation breakdown by province and cohort")
    parser.add_argument("player_id", help="Player to report on")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--cohorts", "-c",
        type=int,
        default=0,
        help="List the N best and N worst cohorts",
    )
    args = parser.parse_args()

    found = asyncio.run(
        run_report(args.database_url or settings.database_url, args.player_id, args.cohorts)
    )
    sys.exit(0 if found else 1)


if __name__ == "__main__":
    main()
