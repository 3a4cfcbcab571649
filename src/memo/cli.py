"""memo command line interface.

Examples:
    memo init --local
    memo embed notes/ --tags project,design
    memo search "vector index tuning" --tree
    memo merge <ID1> <ID2> --content "combined note"
"""

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import List, Optional

import typer

from memo.config import MemoConfig, init_workspace, load_config, resolve_config_path
from memo.errors import DuplicateDetected, MemoError, NotFound
from memo.models import TimeRange
from memo.parser import split_tags
from memo.service import MemoService
from memo.ui import Output

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Long-term memory with layered semantic search.",
    no_args_is_help=True,
    add_completion=False,
)

LocalOption = typer.Option(False, "--local", "-l", help="Use the ./.memo workspace")
GlobalOption = typer.Option(False, "--global", "-g", help="Use the ~/.memo workspace")
TagsOption = typer.Option(None, "--tags", help="Comma-separated tags")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_service(config: MemoConfig) -> MemoService:
    return MemoService.from_config(config)


@contextmanager
def _handle_errors(output: Output) -> Iterator[None]:
    try:
        yield
    except DuplicateDetected as e:
        output.duplicates(e)
        raise typer.Exit(1)
    except MemoError as e:
        output.error(str(e))
        raise typer.Exit(1)


def _scope_name(config: MemoConfig) -> str:
    return "local" if config.scope == "local" else "global"


def _prepare(ctx: typer.Context, local: bool, global_: bool) -> MemoConfig:
    config = load_config(local=local, global_=global_)
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    _setup_logging("DEBUG" if verbose else config.log_level)
    return config


def _open(ctx: typer.Context, output: Output, local: bool, global_: bool) -> tuple[MemoConfig, MemoService]:
    config = _prepare(ctx, local, global_)
    service = build_service(config)
    count = asyncio.run(service.count())
    output.database_info(
        config.brain_path, count, config.embedding.model, service.embedder.dimension
    )
    return config, service


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    ctx.obj = {"verbose": verbose}


@app.command()
def init(
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """Create a workspace with a default config.toml."""
    output = Output()
    with _handle_errors(output):
        resolve_config_path(local, global_)
        root = init_workspace(local=local)
        output.resource_action("Initialized", "config", root / "config.toml")
        output.resource_action("Prepared", "brain", root / "brain")
        output.finish("initialization", "local" if local else "global")


@app.command()
def embed(
    ctx: typer.Context,
    input: str = typer.Argument(..., help="Text, a Markdown file, or a directory of Markdown files"),
    tags: Optional[str] = TagsOption,
    force: bool = typer.Option(False, "--force", "-f", help="Skip the duplicate check"),
    dup_threshold: Optional[float] = typer.Option(
        None, "--dup-threshold", help="Similarity at which an existing memory counts as duplicate"
    ),
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """Embed text or Markdown into memory."""
    output = Output()
    with _handle_errors(output):
        config, service = _open(ctx, output, local, global_)
        output.status("Embedding", input if len(input) <= 60 else input[:57] + "...")
        report = asyncio.run(
            service.embed(input, split_tags(tags), force=force, threshold=dup_threshold)
        )
        for memory in report.stored:
            output.memory_detail(memory)
        for skipped in report.skipped:
            output.status("Skipped", f"{skipped.section.title} ({skipped.section.source_file})")
            output.duplicates(skipped.duplicate)
        if report.files:
            output.stats(files=report.files, sections=len(report.stored), skipped=len(report.skipped))
        output.finish("embedding", _scope_name(config))


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="What to look for"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum results (tree: node budget)"),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="Minimum similarity"),
    tree: bool = typer.Option(False, "--tree", help="Expand results layer by layer into a tree"),
    after: Optional[str] = typer.Option(None, "--after", help="Only memories updated after YYYY-MM-DD[ HH:MM]"),
    before: Optional[str] = typer.Option(None, "--before", help="Only memories updated before YYYY-MM-DD[ HH:MM]"),
    tags: Optional[str] = typer.Option(None, "--tags", help="Only memories with any of these tags"),
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """Semantic search over stored memories."""
    output = Output()
    with _handle_errors(output):
        time_range = TimeRange.parse(after, before)
        config, service = _open(ctx, output, local, global_)
        output.status("Searching", query)
        result = asyncio.run(
            service.search(
                query,
                limit=limit,
                threshold=threshold,
                tree=tree,
                time_range=time_range,
                tags=split_tags(tags),
            )
        )
        output.search_results(result)


@app.command("list")
def list_memories(
    ctx: typer.Context,
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """List all memories, newest first."""
    output = Output()
    with _handle_errors(output):
        _, service = _open(ctx, output, local, global_)
        output.memory_list(asyncio.run(service.list()))


@app.command()
def update(
    ctx: typer.Context,
    memory_id: str = typer.Argument(..., metavar="ID", help="Memory to update"),
    content: str = typer.Option(..., "--content", "-c", help="New content"),
    tags: Optional[str] = TagsOption,
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """Replace the content (and optionally tags) of a memory."""
    output = Output()
    with _handle_errors(output):
        config, service = _open(ctx, output, local, global_)
        new_tags = split_tags(tags) if tags is not None else None
        result = asyncio.run(service.update(memory_id, content, new_tags))
        output.status("Updated", memory_id)
        output.memory_detail(result.memory)
        if result.stale_version_kept:
            output.warning("The previous version could not be removed; it will be hidden by the new one")
        output.finish("update", _scope_name(config))


@app.command()
def merge(
    ctx: typer.Context,
    memory_ids: List[str] = typer.Argument(..., metavar="IDS...", help="Memories to merge (two or more)"),
    content: str = typer.Option(..., "--content", "-c", help="Content of the merged memory"),
    tags: Optional[str] = TagsOption,
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """Merge several memories into one new memory."""
    output = Output()
    with _handle_errors(output):
        config, service = _open(ctx, output, local, global_)
        new_tags = split_tags(tags) if tags is not None else None
        result = asyncio.run(service.merge(memory_ids, content, new_tags))
        output.status("Merged", f"{len(result.source_ids)} memories into {result.memory.id}")
        output.memory_detail(result.memory)
        if result.failed_deletes:
            output.warning(
                "Could not remove merged sources: " + ", ".join(result.failed_deletes)
            )
        output.finish("merge", _scope_name(config))


@app.command()
def delete(
    ctx: typer.Context,
    memory_id: str = typer.Argument(..., metavar="ID", help="Memory to delete"),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation"),
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """Delete a memory."""
    output = Output()
    with _handle_errors(output):
        config, service = _open(ctx, output, local, global_)
        memory = asyncio.run(service.store.get(memory_id))
        if memory is None:
            raise NotFound(memory_id)
        output.memory_detail(memory)
        if not force and not typer.confirm("Delete this memory?"):
            output.note("Cancelled")
            return
        asyncio.run(service.delete(memory_id))
        output.status("Deleted", memory_id)
        output.finish("delete", _scope_name(config))


@app.command()
def clear(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation"),
    local: bool = LocalOption,
    global_: bool = GlobalOption,
):
    """Delete every memory in the workspace."""
    output = Output()
    with _handle_errors(output):
        config, service = _open(ctx, output, local, global_)
        if not force and not typer.confirm(f"Delete all memories in {config.brain_path}?"):
            output.note("Cancelled")
            return
        removed = asyncio.run(service.clear())
        output.status("Cleared", f"{removed} memories")
        output.finish("clear", _scope_name(config))


def main() -> None:
    app()
