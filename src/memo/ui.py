"""Terminal rendering with rich.

Progress and status lines go to stderr; results go to stdout so they can be
piped.
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from memo.errors import DuplicateDetected
from memo.models import Memory, ResultSet, SearchCandidate

PREVIEW_CHARS = 100
_LABEL_WIDTH = 12


def get_stderr_console(no_color: bool = False) -> Console:
    return Console(file=sys.stderr, no_color=no_color)


def get_stdout_console(no_color: bool = False) -> Console:
    return Console(file=sys.stdout, no_color=no_color)


def preview(content: str, limit: int = PREVIEW_CHARS) -> str:
    """Single-line preview of ``content``, truncated to ``limit`` characters."""
    single_line = " ".join(content.split())
    if len(single_line) > limit:
        return single_line[:limit].rstrip() + "..."
    return single_line


def format_date(moment: datetime, with_time: bool = True) -> str:
    local = moment.astimezone()
    return local.strftime("%Y-%m-%d %H:%M" if with_time else "%Y-%m-%d")


def duplicate_suggestions(count: int) -> list[str]:
    """What the user can do about ``count`` similar memories."""
    if count == 1:
        hints = [
            "Update the existing memory: memo update <ID> --content \"...\"",
            "Or delete it first: memo delete <ID>, then embed again",
        ]
    elif count == 2:
        hints = ["Merge them: memo merge <ID1> <ID2> --content \"...\""]
    else:
        hints = ["Reorganize them with memo merge / memo update / memo delete"]
    hints.append("Use --force to add it anyway")
    return hints


class Output:
    """Status and result rendering for the CLI."""

    def __init__(self, err: Console | None = None, out: Console | None = None) -> None:
        self.err = err or get_stderr_console()
        self.out = out or get_stdout_console()

    def _label(self, text: str, style: str = "bold green") -> str:
        return f"[{style}]{text:>{_LABEL_WIDTH}}[/{style}]"

    # ── Status lines ──────────────────────────────────────────

    def status(self, action: str, target: str) -> None:
        self.err.print(f"{self._label(action)} {escape(target)}")

    def database_info(
        self, path: Path, record_count: int, model: str | None = None, dimension: int | None = None
    ) -> None:
        details = f"{record_count} records"
        if model:
            details += f", {model}/{dimension}d"
        self.err.print(f"{self._label('Database')} {escape(str(path))} [dim]({details})[/dim]")
        self.err.print()

    def resource_action(self, action: str, resource: str, path: Path) -> None:
        self.err.print(f"{self._label(action)} {resource} at {escape(str(path))}")

    def stats(self, **counts: int) -> None:
        parts = ", ".join(f"{count} {name}" for name, count in counts.items())
        self.err.print(f"{'':>{_LABEL_WIDTH}} [dim]{parts}[/dim]")

    def finish(self, action: str, scope: str) -> None:
        self.err.print()
        self.err.print(f"{self._label('Finished')} {action} for {scope} scope")

    def note(self, message: str) -> None:
        self.err.print(f"{self._label('note:', 'dim')} {escape(message)}")

    def warning(self, message: str) -> None:
        self.err.print()
        self.err.print(f"{self._label('Warning', 'bold red')} {escape(message)}")
        self.err.print()

    def error(self, message: str) -> None:
        self.err.print(f"{self._label('Error', 'bold red')} {escape(message)}")

    # ── Results ───────────────────────────────────────────────

    def _score(self, candidate: SearchCandidate) -> str:
        return f"[dim][{candidate.provenance}:{candidate.display_score:.2f}][/dim]"

    def search_results(self, result: ResultSet) -> None:
        if not result.candidates:
            self.out.print("[yellow]No matching memories found[/yellow]")
            return
        if result.mode == "tree":
            self.search_tree(result)
            return
        for candidate in result.candidates:
            memory = candidate.memory
            self.out.print(
                f"{self._score(candidate)} [cyan]{memory.id}[/cyan] "
                f"[dim]({format_date(memory.updated_at)})[/dim]"
            )
            self.out.print(f"    {escape(preview(memory.content))}")
            self.out.print()

    def search_tree(self, result: ResultSet) -> None:
        forest = Tree(f"[bold]{escape(result.query)}[/bold]", guide_style="dim")

        def add(branch: Tree, candidate: SearchCandidate) -> None:
            memory = candidate.memory
            node = branch.add(
                f"{self._score(candidate)} [cyan]{memory.id}[/cyan] "
                f"[bold]{escape(memory.title)}[/bold] [dim]L{candidate.layer_index}[/dim]\n"
                f"[dim]{escape(preview(memory.content))}[/dim]"
            )
            for child in result.children_of(memory.id):
                add(node, child)

        for root in result.roots():
            add(forest, root)
        self.out.print(forest)
        thresholds = " → ".join(f"{t:.2f}" for t in result.thresholds)
        self.err.print(
            f"{'':>{_LABEL_WIDTH}} [dim]{len(result)} nodes, {result.layer_count} layers, "
            f"thresholds {thresholds}[/dim]"
        )

    def memory_list(self, memories: list[Memory]) -> None:
        if not memories:
            self.out.print("[yellow]No memories stored yet[/yellow]")
            return
        table = Table(title=f"Memories ({len(memories)})")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Title", style="bold")
        table.add_column("Tags", style="green")
        table.add_column("Updated", style="dim", no_wrap=True)
        table.add_column("Content")
        for memory in memories:
            table.add_row(
                memory.id,
                escape(memory.title),
                escape(", ".join(memory.tags)),
                format_date(memory.updated_at),
                escape(preview(memory.content, 60)),
            )
        self.out.print(table)

    def memory_detail(self, memory: Memory) -> None:
        self.out.print(f"[cyan]{memory.id}[/cyan] [bold]{escape(memory.title)}[/bold]")
        if memory.tags:
            self.out.print(f"    [green]{escape(', '.join(memory.tags))}[/green]")
        self.out.print(f"    [dim]{escape(preview(memory.content))}[/dim]")

    def duplicates(self, duplicate: DuplicateDetected) -> None:
        self.warning(str(duplicate.message))
        table = Table(show_header=True)
        table.add_column("Score", justify="right")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Tags", style="green")
        table.add_column("Updated", style="dim", no_wrap=True)
        table.add_column("Content")
        for match in duplicate.matches:
            table.add_row(
                f"{match.score:.2f}",
                match.id,
                escape(", ".join(match.tags)),
                format_date(match.updated_at),
                escape(preview(match.excerpt, 80)),
            )
        self.err.print(table)
        for hint in duplicate_suggestions(len(duplicate.matches)):
            self.note(hint)
