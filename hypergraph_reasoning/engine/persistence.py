"""JSON persistence for hypergraphs, embeddings and edge metadata.

File layouts:
    hypergraph.json   {"incidence_dict": {"edge": ["a", "b"], ...}}   (or HIF)
    embeddings.json   {"node": [0.1, 0.2, ...], ...}
    metadata.json     [{"edge": ..., "relation": ..., "source": [...], ...}, ...]

Member arrays and keys are sorted so files are reproducible and diff cleanly.

Security:
    Path validation is performed to prevent path traversal attacks.
    All paths are resolved to absolute paths and validated.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Literal

from pydantic import TypeAdapter

from hypergraph_reasoning.engine.core import Hypergraph
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.models import EdgeMetadata

logger = logging.getLogger(__name__)

FormatType = Literal["json", "hif"]

_METADATA_LIST = TypeAdapter(list[EdgeMetadata])


def _validate_path(path: str | Path, base_dir: Path | None = None) -> Path:
    """Validate and resolve a file path.

    Performs security checks to prevent path traversal attacks.

    Args:
        path: The path to validate
        base_dir: Optional base directory that the path must be within

    Returns:
        Resolved absolute Path

    Raises:
        ValueError: If path is invalid or attempts path traversal
    """
    path = str(path)
    # Check for null bytes before any path operations (common attack vector)
    if "\x00" in path:
        raise ValueError(f"Invalid path (contains null bytes): {path!r}")

    resolved = Path(path).resolve()

    if base_dir is not None:
        base_resolved = base_dir.resolve()
        try:
            resolved.relative_to(base_resolved)
        except ValueError:
            raise ValueError(
                f"Path traversal detected: {path} is outside base directory {base_dir}"
            )

    return resolved


def _write_json(path: str | Path, data: Any, base_dir: Path | None = None) -> Path:
    validated_path = _validate_path(path, base_dir)
    validated_path.parent.mkdir(parents=True, exist_ok=True)
    with open(validated_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return validated_path


def _read_json(path: str | Path, base_dir: Path | None = None) -> Any:
    validated_path = _validate_path(path, base_dir)
    with open(validated_path, encoding="utf-8") as f:
        return json.load(f)


def save_hypergraph(
    hypergraph: Hypergraph,
    path: str | Path,
    format: FormatType = "json",
    base_dir: Path | None = None,
) -> None:
    """Save a hypergraph to a file.

    Args:
        hypergraph: The hypergraph to save
        path: Output file path
        format: "json" for the incidence-dict layout, "hif" for HIF standard
        base_dir: If given, the path must resolve inside this directory

    Raises:
        ValueError: If path is invalid or format is unknown
    """
    if format == "json":
        data = hypergraph.to_dict()
    elif format == "hif":
        data = hypergraph.to_hif()
    else:
        raise ValueError(f"Unknown format: {format!r}")
    written = _write_json(path, data, base_dir)
    logger.debug("Saved hypergraph (%d edges) to %s", hypergraph.edge_count, written)


def load_hypergraph(
    path: str | Path,
    format: FormatType = "json",
    base_dir: Path | None = None,
) -> Hypergraph:
    """Load a hypergraph from a file.

    Raises:
        ValueError: If path is invalid, format is unknown or the file does
                    not contain an incidence dict
        FileNotFoundError: If file does not exist
    """
    data = _read_json(path, base_dir)
    if format == "json":
        if not isinstance(data, dict) or not isinstance(data.get("incidence_dict", {}), dict):
            raise ValueError(f"{path} does not contain an incidence_dict object")
        return Hypergraph.from_dict(data)
    elif format == "hif":
        return Hypergraph.from_hif(data)
    else:
        raise ValueError(f"Unknown format: {format!r}")


def save_embeddings(
    embeddings: NodeEmbeddings,
    path: str | Path,
    base_dir: Path | None = None,
) -> None:
    """Save embeddings as a flat ``{node: [floats]}`` map."""
    written = _write_json(path, embeddings.to_dict(), base_dir)
    logger.debug("Saved %d embeddings to %s", len(embeddings), written)


def load_embeddings(path: str | Path, base_dir: Path | None = None) -> NodeEmbeddings:
    """Load embeddings saved by save_embeddings().

    Raises:
        ValueError: If the file is not a node -> vector map or the vectors
                    have inconsistent dimensions
        FileNotFoundError: If file does not exist
    """
    data = _read_json(path, base_dir)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a node -> vector object")
    return NodeEmbeddings.from_dict(data)


def save_metadata(
    metadata: dict[str, EdgeMetadata] | Iterable[EdgeMetadata],
    path: str | Path,
    base_dir: Path | None = None,
) -> None:
    """Save edge metadata as a JSON array ordered by edge ID."""
    records = metadata.values() if isinstance(metadata, dict) else metadata
    ordered = sorted(records, key=lambda record: record.edge)
    _write_json(path, [record.model_dump(mode="json") for record in ordered], base_dir)


def load_metadata(path: str | Path, base_dir: Path | None = None) -> dict[str, EdgeMetadata]:
    """Load edge metadata keyed by edge ID.

    Raises:
        pydantic.ValidationError: If a record is malformed
        FileNotFoundError: If file does not exist
    """
    records = _METADATA_LIST.validate_python(_read_json(path, base_dir))
    return {record.edge: record for record in records}
