"""hgr CLI: build, embed, simplify and query hypergraph knowledge bases."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from hypergraph_reasoning.config import Settings
from hypergraph_reasoning.engine.builder import build_hypergraph, merge_fragments
from hypergraph_reasoning.engine.core import Hypergraph
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.engine.persistence import (
    load_embeddings,
    load_hypergraph,
    load_metadata,
    save_embeddings,
    save_hypergraph,
    save_metadata,
)
from hypergraph_reasoning.engine.simplifier import HypergraphSimplifier
from hypergraph_reasoning.llm.base import CapabilityError, Embedder, TextGenerator
from hypergraph_reasoning.llm.embedding import EmbeddingService
from hypergraph_reasoning.models import EdgeMetadata, FactSet
from hypergraph_reasoning.rag.service import GraphRAGService

logger = logging.getLogger(__name__)


def _make_embedder(settings: Settings) -> Embedder:
    from hypergraph_reasoning.llm.openai_backend import OpenAIEmbedder

    return OpenAIEmbedder.from_settings(settings)


def _make_generator(settings: Settings) -> TextGenerator:
    from hypergraph_reasoning.llm.openai_backend import OpenAIGenerator

    return OpenAIGenerator.from_settings(settings)


def _load_graph(path: str) -> Hypergraph:
    try:
        return load_hypergraph(path)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Cannot load hypergraph from {path}: {exc}")


def _load_embeddings(path: str) -> NodeEmbeddings:
    try:
        return load_embeddings(path)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Cannot load embeddings from {path}: {exc}")


def _load_metadata(path: str) -> dict[str, EdgeMetadata]:
    try:
        return load_metadata(path)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Cannot load metadata from {path}: {exc}")


def _run(coro):
    """Run a coroutine, reporting capability failures as CLI errors."""
    try:
        return asyncio.run(coro)
    except CapabilityError as exc:
        raise click.ClickException(f"{type(exc).__name__}: {exc}")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """hgr: hypergraph knowledge bases for graph-based retrieval."""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = Settings.from_env()


@cli.command()
@click.argument("facts_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", required=True, type=click.Path(dir_okay=False), help="Hypergraph JSON to write.")
@click.option("--metadata-out", type=click.Path(dir_okay=False), default=None, help="Edge metadata JSON to write.")
@click.option("--hif", is_flag=True, help="Write the hypergraph in HIF format.")
def build(facts_file: str, output: str, metadata_out: str | None, hif: bool) -> None:
    """Build a hypergraph from extracted facts.

    FACTS_FILE holds a JSON list of {"chunk_id": ..., "events": [...]} objects
    (a single such object is accepted too).
    """
    try:
        data = json.loads(Path(facts_file).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{facts_file} is not valid JSON: {exc}")
    chunks = data if isinstance(data, list) else [data]

    fragments = []
    for position, chunk in enumerate(chunks):
        if not isinstance(chunk, dict):
            raise click.ClickException(f"Entry {position} is not an object")
        # Entries without a chunk_id are numbered by position so edge IDs stay unique
        chunk_id = chunk.get("chunk_id")
        if chunk_id is None:
            chunk_id = position
        try:
            fact_set = FactSet.model_validate(chunk)
        except ValidationError as exc:
            raise click.ClickException(f"Entry {position} has malformed events: {exc}")
        fragments.append(build_hypergraph(fact_set.events, str(chunk_id)))

    try:
        graph, metadata = merge_fragments(fragments)
    except ValueError as exc:
        raise click.ClickException(str(exc))
    save_hypergraph(graph, output, format="hif" if hif else "json")
    if metadata_out:
        save_metadata(metadata, metadata_out)
    click.echo(f"Built hypergraph: {graph.node_count} nodes, {graph.edge_count} edges -> {output}")


@cli.command()
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", required=True, type=click.Path(dir_okay=False), help="Embeddings JSON to write.")
@click.option("--existing", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Reuse vectors from this embeddings file; only new nodes are embedded.")
@click.option("--model", default=None, help="Embedding model (overrides HGR_EMBEDDING_MODEL).")
@click.pass_context
def embed(ctx: click.Context, graph_file: str, output: str, existing: str | None, model: str | None) -> None:
    """Generate node embeddings for a hypergraph."""
    settings: Settings = ctx.obj["settings"]
    if model:
        settings = settings.model_copy(update={"embedding_model": model})
    graph = _load_graph(graph_file)
    current = _load_embeddings(existing) if existing else NodeEmbeddings()
    service = EmbeddingService(_make_embedder(settings), batch_size=settings.embedding_batch_size)

    embeddings = _run(service.update_embeddings(current, graph))
    save_embeddings(embeddings, output)
    click.echo(f"Embedded {len(embeddings)} nodes (dimension {embeddings.dimension}) -> {output}")


@cli.command()
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("embeddings_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", required=True, type=click.Path(dir_okay=False), help="Simplified hypergraph JSON.")
@click.option("--embeddings-out", required=True, type=click.Path(dir_okay=False), help="Pruned embeddings JSON.")
@click.option("--threshold", type=float, default=None, help="Merge similarity threshold (default 0.9).")
@click.option("--exclude-suffix", "exclude_suffixes", multiple=True, help="Never merge nodes ending with this.")
@click.option("--recompute", is_flag=True, help="Re-embed nodes that absorbed a merge.")
@click.option("--dry-run", is_flag=True, help="List merge candidates without writing anything.")
@click.pass_context
def simplify(
    ctx: click.Context,
    graph_file: str,
    embeddings_file: str,
    output: str,
    embeddings_out: str,
    threshold: float | None,
    exclude_suffixes: tuple[str, ...],
    recompute: bool,
    dry_run: bool,
) -> None:
    """Merge near-duplicate nodes by embedding similarity."""
    settings: Settings = ctx.obj["settings"]
    graph = _load_graph(graph_file)
    embeddings = _load_embeddings(embeddings_file)
    simplifier = HypergraphSimplifier(settings.similarity_threshold if threshold is None else threshold)

    if dry_run:
        candidates = simplifier.find_merge_candidates(graph, embeddings, exclude_suffixes=exclude_suffixes)
        if not candidates:
            click.echo("No merge candidates.")
        for node_a, node_b, similarity in candidates:
            click.echo(f"  {node_a}  ~  {node_b}  ({similarity:.3f})")
        return

    if recompute:
        result = _run(
            simplifier.simplify_and_recompute(
                graph,
                embeddings,
                embedder=_make_embedder(settings),
                exclude_suffixes=exclude_suffixes,
            )
        )
    else:
        result = simplifier.simplify(graph, embeddings, exclude_suffixes=exclude_suffixes)

    save_hypergraph(result.hypergraph, output)
    save_embeddings(result.embeddings, embeddings_out)
    for record in result.merge_history:
        logger.info("%s", record)
    click.echo(
        f"Simplified: {graph.node_count} -> {result.hypergraph.node_count} nodes, "
        f"{graph.edge_count} -> {result.hypergraph.edge_count} edges ({result.summary()})"
    )


@cli.command()
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--embeddings", "embeddings_file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--top", default=10, show_default=True, help="Number of highest-degree nodes to list.")
def info(graph_file: str, embeddings_file: str | None, top: int) -> None:
    """Show summary statistics for a hypergraph."""
    graph = _load_graph(graph_file)
    s = graph.stats()
    click.echo(f"Nodes: {s.node_count}  Edges: {s.edge_count}")
    click.echo(f"Components: {s.component_count}  Largest: {s.largest_component_size}")
    click.echo(f"Average edge size: {s.average_edge_size:.2f}  Max degree: {s.max_degree}")
    if embeddings_file:
        embeddings = _load_embeddings(embeddings_file)
        missing = embeddings.missing(graph.nodes)
        click.echo(
            f"Embeddings: {len(embeddings)} (dimension {embeddings.dimension}), "
            f"{len(missing)} nodes without embedding"
        )
    if top > 0 and s.node_count:
        click.echo("Top nodes by degree:")
        for node, degree in graph.top_nodes_by_degree(top):
            click.echo(f"  {node}: {degree}")


@cli.command()
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("embeddings_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("question")
@click.option("--metadata", "metadata_file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--context-only", is_flag=True, help="Print retrieved context without answering.")
@click.option("--simple-keywords", is_flag=True, help="Use rule-based keywords instead of the LLM.")
@click.option("--top-k", type=int, default=None, help="Embedding matches per keyword.")
@click.option("--max-path-length", type=int, default=None, help="Maximum nodes per path.")
@click.option("--threshold", type=float, default=None, help="Minimum keyword match similarity.")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
@click.pass_context
def query(
    ctx: click.Context,
    graph_file: str,
    embeddings_file: str,
    question: str,
    metadata_file: str | None,
    context_only: bool,
    simple_keywords: bool,
    top_k: int | None,
    max_path_length: int | None,
    threshold: float | None,
    as_json: bool,
) -> None:
    """Answer QUESTION from the hypergraph."""
    settings: Settings = ctx.obj["settings"]
    graph = _load_graph(graph_file)
    embeddings = _load_embeddings(embeddings_file)
    metadata = _load_metadata(metadata_file) if metadata_file else None

    service = GraphRAGService(
        graph,
        embeddings,
        generator=_make_generator(settings),
        embedder=_make_embedder(settings),
        metadata=metadata,
        chat_model=settings.chat_model,
        max_context_tokens=settings.max_context_tokens,
        direct_edges_per_node=settings.direct_edges_per_node,
        keyword_fallback=True,
        legacy_edge_labels=metadata is None,
    )
    k = settings.top_k if top_k is None else top_k
    length = settings.max_path_length if max_path_length is None else max_path_length
    cutoff = settings.match_threshold if threshold is None else threshold

    async def run():
        if simple_keywords:
            context = await service.retrieve_simple(question, top_k=k, max_path_length=length, threshold=cutoff)
        else:
            context = await service.retrieve(question, top_k=k, max_path_length=length, threshold=cutoff)
        if context_only:
            return context, None
        return context, await service.answer(question, context)

    context, response = _run(run())

    if as_json:
        payload = response.model_dump(mode="json") if response else context.model_dump(mode="json")
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    click.echo(f"Keywords: {', '.join(context.keywords) or '(none)'}")
    click.echo(f"Matched nodes: {', '.join(m.node for m in context.matched_nodes) or '(none)'}")
    click.echo(f"Paths: {len(context.paths)}")
    click.echo("")
    click.echo(context.formatted_context or "No relevant context found in the graph.")
    if response is not None:
        click.echo("")
        click.echo(response.answer)


@cli.command("export-hif")
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("output", type=click.Path(dir_okay=False))
def export_hif(graph_file: str, output: str) -> None:
    """Export a hypergraph to HIF (JSON) format."""
    save_hypergraph(_load_graph(graph_file), output, format="hif")
    click.echo(f"Exported HIF to {output}")


@cli.command()
@click.option("--graph", default=None, help="Hypergraph path (overrides HGR_GRAPH_PATH).")
@click.option("--embeddings", default=None, help="Embeddings path (overrides HGR_EMBEDDINGS_PATH).")
@click.option("--metadata", default=None, help="Metadata path (overrides HGR_METADATA_PATH).")
def mcp(graph: str | None, embeddings: str | None, metadata: str | None) -> None:
    """Start the MCP server for AI agent integration."""
    import os

    if graph:
        os.environ["HGR_GRAPH_PATH"] = graph
    if embeddings:
        os.environ["HGR_EMBEDDINGS_PATH"] = embeddings
    if metadata:
        os.environ["HGR_METADATA_PATH"] = metadata
    from hypergraph_reasoning.mcp.server import run_server

    run_server()


if __name__ == "__main__":
    cli()
