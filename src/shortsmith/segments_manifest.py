"""Segments manifest loader — highlight ranges to turn into shorts.

The manifest stands in for a highlight detector: it lists the candidate
ranges in the order they should be processed. Follows the same ${var}
path resolution as the rest of the project.

Segments manifest schema:
  source: "${raw}/match.mp4"      # or a plain path
  paths:
    raw: "/data/recordings"
  encode:                         # optional EncodeSpec overrides
    crf: 20
    preset: medium
  segments:
    - start: 45.0
      end: 75.0
      title: "Epic Victory Moment"  # optional
"""

from pathlib import Path

import yaml

from .common import resolve_path_vars
from .encode import encode_spec_from_dict
from .timerange import Segment


def load_segments_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a segments manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Resolve ${path} variables in source.
      3. Validate each segment entry (start, end, optional title).
      4. Build the EncodeSpec from the optional `encode` block.

    Clip duration bounds are not enforced here; the pipeline skips
    out-of-bounds segments and reports them.

    Args:
        manifest_path: Path to the YAML segments manifest.

    Returns:
        Dict with 'source' (resolved path str), 'segments' (list of
        Segment) and 'encode' (EncodeSpec).

    Raises:
        ValueError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Segments manifest: expected a mapping at the top level")
    if "source" not in raw:
        raise ValueError("Segments manifest: missing required 'source' field")
    if "segments" not in raw:
        raise ValueError("Segments manifest: missing required 'segments' field")

    paths = raw.get("paths") or {}
    source = resolve_path_vars(str(raw["source"]), paths)

    segments = []
    for i, entry in enumerate(raw["segments"] or []):
        if not isinstance(entry, dict):
            raise ValueError(
                f"Segment {i}: expected a mapping, got {type(entry).__name__}"
            )
        if "start" not in entry:
            raise ValueError(f"Segment {i}: missing required field 'start'")
        if "end" not in entry:
            raise ValueError(f"Segment {i}: missing required field 'end'")

        start = float(entry["start"])
        end = float(entry["end"])

        if start < 0:
            raise ValueError(f"Segment {i}: start must be >= 0, got {start}")
        if start >= end:
            raise ValueError(
                f"Segment {i}: start ({start}) must be < end ({end})"
            )

        title = entry.get("title")
        segments.append(Segment(start, end, str(title) if title else None))

    encode = encode_spec_from_dict(raw.get("encode"))

    return {"source": source, "segments": segments, "encode": encode}
