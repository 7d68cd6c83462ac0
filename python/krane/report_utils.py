"""
Rendering and saving of krane output.

- ``list`` output as a table (tabulate), JSON or YAML
- JSON reports for ``push`` runs
"""
import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml
from tabulate import tabulate

from krane.k8s_client import ImageInfo
from krane.logging_utils import get_logger

logger = get_logger(__name__)

# Sources shown per image in the grouped table before summarising the rest
MAX_SOURCES_SHOWN = 3


@dataclass
class GroupedImage:
    """An image with every workload it was found in"""
    image: str
    sources: List[ImageInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"image": self.image, "sources": [s.to_dict() for s in self.sources]}


def group_sources_by_image(infos: Sequence[ImageInfo], allowed_images: Sequence[str]) -> List[GroupedImage]:
    """Group source information by image, keeping only allowed images.

    Images are sorted by name, sources by (namespace, kind, name).
    """
    allowed = set(allowed_images)
    grouped: Dict[str, List[ImageInfo]] = defaultdict(list)
    for info in infos:
        if info.image in allowed:
            grouped[info.image].append(info)

    result = []
    for image in sorted(grouped):
        sources = sorted(grouped[image], key=lambda s: (s.namespace, s.source_kind, s.source_name))
        result.append(GroupedImage(image=image, sources=sources))
    return result


def render_images(images: Sequence[str], output_format: str) -> str:
    """Render a plain image list in the requested format."""
    if output_format == "json":
        return json.dumps({"images": list(images), "total": len(images)}, indent=2)
    if output_format == "yaml":
        return yaml.safe_dump({"images": list(images), "total": len(images)}, sort_keys=False)

    rows = [[i, image] for i, image in enumerate(images, 1)]
    table = tabulate(rows, headers=["#", "CONTAINER IMAGE"], tablefmt="simple")
    return f"{table}\n\nTotal: {len(images)} unique images"


def render_grouped(grouped: Sequence[GroupedImage], output_format: str) -> str:
    """Render images with their sources in the requested format."""
    payload = {"images": [g.to_dict() for g in grouped], "total": len(grouped)}
    if output_format == "json":
        return json.dumps(payload, indent=2)
    if output_format == "yaml":
        return yaml.safe_dump(payload, sort_keys=False)

    rows = []
    for i, group in enumerate(grouped, 1):
        shown = group.sources[:MAX_SOURCES_SHOWN]
        lines = [f"ns={s.namespace} source={s.source_kind}/{s.source_name}" for s in shown]
        hidden = len(group.sources) - len(shown)
        if hidden > 0:
            lines.append(f"... and {hidden} more sources")
        rows.append([i, group.image, "\n".join(lines)])
    table = tabulate(rows, headers=["#", "CONTAINER IMAGE", "SOURCES"], tablefmt="grid")
    return f"{table}\n\nTotal: {len(grouped)} unique images"


def get_timestamp_suffix() -> str:
    """
    Generate a timestamp suffix for report filenames.

    Returns:
        String in format: YYYY-MM-DD-HH-MM-SS
    """
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")


def save_json(path: str, data: Any) -> str:
    """
    Write JSON data to a file with indentation, creating parent directories.

    Args:
        path: Path to save the JSON file
        data: Data to save (non-JSON types are written with str())

    Returns:
        Path to the saved file
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w") as f:
        json.dump(data, f, indent=2, default=str)
    logger.info(f"Report saved to: {output}")
    return str(output)
