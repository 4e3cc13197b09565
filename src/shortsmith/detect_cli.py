"""CLI for batch short generation from a segments manifest.

Usage:
    shortsmith detect --manifest segments.yaml --output-dir shorts/
    shortsmith detect match.mp4 --manifest segments.yaml --output-dir shorts/ --timeout 300
"""

import argparse
import asyncio
import sys

from .clips import ClipRegistry, SourceVideo
from .engine import FFmpegEngine, TranscodeAdapter
from .errors import NoClipsProducedError
from .export import DEFAULT_STAGGER, DirectorySaver, ExportCoordinator
from .pipeline import PipelineOrchestrator
from .segments_manifest import load_segments_manifest


def _parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="Extract vertical shorts for every segment in a manifest.",
    )
    parser.add_argument(
        "source", nargs="?", default=None,
        help="Path to source video (overrides the manifest's source)",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to segments YAML manifest",
    )
    parser.add_argument(
        "--output-dir", required=True,
        help="Directory to export the shorts into",
    )
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Give up on a segment after this many seconds (default: no limit)",
    )
    parser.add_argument(
        "--stagger", type=float, default=DEFAULT_STAGGER,
        help=f"Minimum seconds between exports (default: {DEFAULT_STAGGER})",
    )
    parser.add_argument(
        "--work-dir", default=None,
        help="Directory for intermediate encodes (default: a temp dir)",
    )
    return parser.parse_args(args)


async def _run(parsed) -> int:
    config = load_segments_manifest(parsed.manifest)

    # CLI source arg overrides manifest source.
    source = await SourceVideo.open_async(parsed.source or config["source"])

    registry = ClipRegistry()
    registry.load_source(source)
    adapter = TranscodeAdapter(FFmpegEngine(), work_dir=parsed.work_dir, spec=config["encode"])
    orchestrator = PipelineOrchestrator(adapter, registry, segment_timeout=parsed.timeout)

    print(f"Processing {len(config['segments'])} segments from {source.path}")
    try:
        try:
            result = await orchestrator.start_auto_detect(config["segments"])
        except NoClipsProducedError as exc:
            print(f"Failed: {exc}")
            for skip in exc.skipped:
                print(f"  SKIP   #{skip.index + 1}  {skip.reason}")
            return 1

        print(result.summary())
        for skip in result.skipped:
            print(f"  SKIP   #{skip.index + 1}  {skip.reason}")

        exporter = ExportCoordinator(DirectorySaver(parsed.output_dir), stagger=parsed.stagger)
        paths = await exporter.export_all(registry.list())
        for path in paths:
            print(f"  SAVED  {path}")
        print(f"Done: {len(paths)} shorts in {parsed.output_dir}")
        return 0
    finally:
        registry.clear()
        adapter.close()


def main(args=None):
    parsed = _parse_args(args)
    status = asyncio.run(_run(parsed))
    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
