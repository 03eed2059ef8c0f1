from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich import print
from rich.table import Table

from .cache import CirclesCacheManager
from .clustering import summarize_circles
from .config import get_settings
from .data_models import CircleOverview, CirclesResult, MemberProfile
from .ingest import load_roster, load_roster_df
from .layout import layout_bubbles
from .llm import OpenAIClassifier
from .logging_config import configure_logging
from .matcher import find_icebreaker_match


app = typer.Typer(help="Community circles CLI")


@app.callback()
def _setup() -> None:
	load_dotenv()
	configure_logging()


def _load_members(path: Path) -> List[MemberProfile]:
	if not path.exists():
		raise typer.BadParameter(f"Roster not found: {path}")
	return load_roster(path)


def _classifier(model: Optional[str]) -> OpenAIClassifier:
	settings = get_settings()
	return OpenAIClassifier(model=model or settings.model)


def _print_circles(result: CirclesResult) -> None:
	table = Table("id", "name", "shortName", "members")
	for circle in result.circles:
		table.add_row(circle.id, circle.name, circle.short_name, str(len(circle.members)))
	print(table)
	print(f"[dim]generated {result.generated_at.isoformat()} | expires {result.expires_at.isoformat()}[/dim]")


@app.command()
def circles(
	roster_path: Path = typer.Argument(..., help="Roster JSON or CSV"),
	community_id: str = typer.Option("default", help="Community the roster belongs to"),
	model: Optional[str] = typer.Option(None, help="OpenAI model (defaults to OPENAI_MODEL)"),
	out_path: Optional[Path] = typer.Option(None, help="Write the circles JSON to this path"),
):
	"""Group a roster into interest circles."""
	members = _load_members(roster_path)
	manager = CirclesCacheManager.for_classifier(_classifier(model), settings=get_settings())
	result = asyncio.run(manager.get_or_generate(community_id, members))
	_print_circles(result)
	if out_path:
		out_path.write_text(result.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
		print(f"[green]Wrote circles to[/green] {out_path}")


@app.command()
def match(
	roster_path: Path = typer.Argument(..., help="Roster JSON or CSV"),
	user_id: str = typer.Option(..., help="Member to find a match for"),
	exclude: List[str] = typer.Option([], help="Recently shown match ids to avoid (repeatable)"),
	model: Optional[str] = typer.Option(None, help="OpenAI model (defaults to OPENAI_MODEL)"),
	seed: Optional[int] = typer.Option(None, help="Random seed for reproducible picks"),
):
	"""Recommend one icebreaker introduction for a member."""
	members = _load_members(roster_path)
	user = next((m for m in members if m.id == user_id), None)
	if user is None:
		raise typer.BadParameter(f"No member with id {user_id} in {roster_path}")

	settings = get_settings()
	result = asyncio.run(
		find_icebreaker_match(
			user_id,
			user,
			members,
			exclude,
			classifier=_classifier(model),
			rng=random.Random(seed),
			max_output_tokens=settings.matching_max_output_tokens,
		)
	)
	if result is None:
		print("[yellow]Nobody else in this community to match with.[/yellow]")
		raise typer.Exit(code=1)

	print(f"[bold]{result.display_name or result.user_id}[/bold]  (score={result.match_score:.2f})")
	if result.shared_interests:
		print("Shared interests: " + ", ".join(result.shared_interests))
	for i, question in enumerate(result.icebreaker_questions, start=1):
		print(f"{i}. {question}")


@app.command()
def layout(
	circles_path: Path = typer.Argument(..., help="Circles JSON written by the 'circles' command"),
	width: float = typer.Option(335.0, help="Canvas width"),
	overlap: bool = typer.Option(False, "--overlap/--packed", help="Relax positions by shared membership"),
	include_all: bool = typer.Option(False, "--include-all/--skip-all", help="Include the All circle"),
):
	"""Lay out circles as bubbles on the canvas."""
	if not circles_path.exists():
		raise typer.BadParameter(f"Circles file not found: {circles_path}")
	result = CirclesResult.model_validate(json.loads(circles_path.read_text(encoding="utf-8")))
	overviews: List[CircleOverview] = summarize_circles(result, include_all=include_all)
	bubbles = layout_bubbles(overviews, width, overlap_mode=overlap)

	table = Table("id", "count", "x", "y", "r")
	for bubble in bubbles:
		table.add_row(bubble.id, str(bubble.circle.count), f"{bubble.x:.1f}", f"{bubble.y:.1f}", f"{bubble.r:.1f}")
	print(table)


@app.command()
def clean(
	roster_path: Path = typer.Argument(..., help="Raw roster export (JSON or CSV)"),
	out_path: Optional[Path] = typer.Option(None, help="Where to write the cleaned CSV"),
):
	"""Normalize a roster export into a clean CSV."""
	if not roster_path.exists():
		raise typer.BadParameter(f"Roster not found: {roster_path}")
	df = load_roster_df(roster_path)
	for col in df.columns:
		df[col] = df[col].map(lambda v: json.dumps(v, ensure_ascii=False) if isinstance(v, (list, dict)) else v)
	out = out_path or roster_path.with_name(f"{roster_path.stem}_cleaned.csv")
	df.to_csv(out, index=False)
	print(f"[green]Wrote cleaned roster to[/green] {out}")


if __name__ == "__main__":
	app()
