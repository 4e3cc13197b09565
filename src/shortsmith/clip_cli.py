"""CLI for a single manually selected short.

Usage:
    shortsmith clip source.mp4 --start 45 --end 75 --output-dir shorts/
    shortsmith clip source.mp4 --start 75 --end 45 --title "Clutch Save" --output-dir shorts/
"""

import argparse
import asyncio

from .clips import ClipRegistry, SourceVideo
from .common import format_duration, format_time
from .engine import FFmpegEngine, TranscodeAdapter
from .export import DirectorySaver, ExportCoordinator
from .pipeline import PipelineOrchestrator
from .timerange import normalize_selection


def _parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="Cut one vertical short from a source video.",
    )
    parser.add_argument("source", help="Path to source video")
    parser.add_argument(
        "--start", type=float, required=True,
        help="Selection start in seconds",
    )
    parser.add_argument(
        "--end", type=float, required=True,
        help="Selection end in seconds (may come before --start)",
    )
    parser.add_argument(
        "--title", default=None,
        help="Clip title, used for the file name (default: 'Clip 1')",
    )
    parser.add_argument(
        "--output-dir", required=True,
        help="Directory to export the short into",
    )
    return parser.parse_args(args)


async def _run(parsed) -> None:
    source = await SourceVideo.open_async(parsed.source)
    registry = ClipRegistry()
    registry.load_source(source)

    start, end = normalize_selection(parsed.start, parsed.end, source.duration)
    clip = registry.create(start, end, title=parsed.title)

    adapter = TranscodeAdapter(FFmpegEngine())
    orchestrator = PipelineOrchestrator(adapter, registry)
    try:
        print(
            f"Cutting {clip.title}  {format_time(clip.start_time)} - "
            f"{format_time(clip.end_time)} ({format_duration(clip.duration)})"
        )
        await orchestrator.render_clip(clip.id)
        path = await ExportCoordinator(DirectorySaver(parsed.output_dir)).export_one(clip)
        print(f"Done: {path}")
    finally:
        registry.clear()
        adapter.close()


def main(args=None):
    parsed = _parse_args(args)
    asyncio.run(_run(parsed))


if __name__ == "__main__":
    main()
