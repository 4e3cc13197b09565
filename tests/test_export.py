"""Tests for the export coordinator and the directory saver."""

import asyncio
import time

import pytest

from shortsmith.clips import Artifact, Clip
from shortsmith.errors import ClipNotReadyError
from shortsmith.export import DirectorySaver, ExportCoordinator, export_filename


class RecordingSaver:
    """Save mechanism that records (filename, monotonic time) per call."""

    def __init__(self):
        self.calls = []

    async def __call__(self, filename, artifact):
        self.calls.append((filename, time.monotonic()))
        return filename


def _ready_clip(tmp_path, title, start=0.0, end=30.0):
    path = tmp_path / f"{title.replace(' ', '-')}.mp4"
    path.write_bytes(f"video:{title}".encode())
    return Clip(title=title, start_time=start, end_time=end, artifact=Artifact(path, "video/mp4"))


class TestExportFilename:
    def test_spaces_become_underscores(self):
        assert export_filename("Epic Victory Moment") == "Epic_Victory_Moment_short.mp4"

    def test_whitespace_runs_collapse(self):
        assert export_filename("Clutch \t  Save") == "Clutch_Save_short.mp4"

    def test_newlines_and_edges(self):
        assert export_filename(" Ace\nRound ") == "_Ace_Round__short.mp4"


class TestExportOne:
    def test_hands_artifact_to_saver(self, tmp_path):
        saver = RecordingSaver()
        clip = _ready_clip(tmp_path, "Clutch Save")
        result = asyncio.run(ExportCoordinator(saver).export_one(clip))
        assert result == "Clutch_Save_short.mp4"

    def test_not_ready_raises(self):
        clip = Clip(title="Pending", start_time=0, end_time=10)
        with pytest.raises(ClipNotReadyError, match="Pending"):
            asyncio.run(ExportCoordinator(RecordingSaver()).export_one(clip))

    def test_repeat_calls_save_again(self, tmp_path):
        saver = RecordingSaver()
        exporter = ExportCoordinator(saver)
        clip = _ready_clip(tmp_path, "Again")

        async def go():
            await exporter.export_one(clip)
            await exporter.export_one(clip)

        asyncio.run(go())
        assert len(saver.calls) == 2


class TestExportAll:
    def test_order_and_default_stagger(self, tmp_path):
        saver = RecordingSaver()
        clips = [_ready_clip(tmp_path, f"c{i}") for i in (1, 2, 3)]
        asyncio.run(ExportCoordinator(saver).export_all(clips))

        assert [name for name, _ in saver.calls] == [
            "c1_short.mp4", "c2_short.mp4", "c3_short.mp4",
        ]
        times = [t for _, t in saver.calls]
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert all(gap >= 0.49 for gap in gaps)

    def test_skips_out_of_bounds_clips(self, tmp_path):
        saver = RecordingSaver()
        clips = [
            _ready_clip(tmp_path, "short", 0.0, 3.0),
            _ready_clip(tmp_path, "ok", 0.0, 30.0),
            _ready_clip(tmp_path, "long", 0.0, 90.0),
        ]
        result = asyncio.run(ExportCoordinator(saver, stagger=0).export_all(clips))
        assert result == ["ok_short.mp4"]

    def test_not_ready_raises_before_any_save(self, tmp_path):
        saver = RecordingSaver()
        clips = [
            _ready_clip(tmp_path, "ready"),
            Clip(title="pending", start_time=0, end_time=30),
        ]
        with pytest.raises(ClipNotReadyError):
            asyncio.run(ExportCoordinator(saver, stagger=0).export_all(clips))
        assert saver.calls == []

    def test_empty(self):
        assert asyncio.run(ExportCoordinator(RecordingSaver()).export_all([])) == []


class TestDirectorySaver:
    def test_writes_artifact_bytes(self, tmp_path):
        clip = _ready_clip(tmp_path, "Epic Victory Moment")
        exporter = ExportCoordinator(DirectorySaver(tmp_path / "out"))
        path = asyncio.run(exporter.export_one(clip))
        assert path == tmp_path / "out" / "Epic_Victory_Moment_short.mp4"
        assert path.read_bytes() == b"video:Epic Victory Moment"

    def test_overwrites_on_repeat(self, tmp_path):
        saver = DirectorySaver(tmp_path / "out")
        first = _ready_clip(tmp_path, "Same")
        path = asyncio.run(saver("Same_short.mp4", first.artifact))
        path.write_bytes(b"stale")
        asyncio.run(saver("Same_short.mp4", first.artifact))
        assert path.read_bytes() == b"video:Same"

    def test_title_cannot_escape_directory(self, tmp_path):
        clip = _ready_clip(tmp_path, "x")
        clip.title = "../../etc/evil"
        path = asyncio.run(ExportCoordinator(DirectorySaver(tmp_path / "out")).export_one(clip))
        assert path.parent == tmp_path / "out"
