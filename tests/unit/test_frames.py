"""
Unit tests for frame naming, ordering and timestamp sampling.

Frames must reach the model in chronological order, so ordering is by the
number in the filename, never by the filename itself.
"""

import pytest

from vidscore.core.analysis.frames import (
    evenly_spaced_timestamps,
    frame_filename,
    frame_ordinal,
    sort_frame_names,
    sorted_frame_paths,
)


class TestFrameNames:
    """Tests for building and parsing frame filenames."""

    def test_frame_filename_uses_ordinal(self):
        assert frame_filename(1) == "screenshot-1.jpg"
        assert frame_filename(12) == "screenshot-12.jpg"

    def test_frame_filename_rejects_zero(self):
        with pytest.raises(ValueError):
            frame_filename(0)

    def test_frame_ordinal_round_trips(self):
        assert frame_ordinal(frame_filename(7)) == 7

    @pytest.mark.parametrize("name", [
        "screenshot-.jpg",
        "screenshot-3.png",
        "frame-3.jpg",
        "screenshot-3.jpg.tmp",
    ])
    def test_non_frames_have_no_ordinal(self, name):
        assert frame_ordinal(name) is None


class TestFrameOrdering:
    """Tests for numeric ordering."""

    def test_two_sorts_before_ten(self):
        """Lexical order would put screenshot-10 before screenshot-2."""
        names = ["screenshot-10.jpg", "screenshot-2.jpg", "screenshot-1.jpg"]

        assert sort_frame_names(names) == [
            "screenshot-1.jpg",
            "screenshot-2.jpg",
            "screenshot-10.jpg",
        ]

    def test_unrelated_files_are_dropped(self):
        names = ["screenshot-2.jpg", ".DS_Store", "notes.txt", "screenshot-1.jpg"]

        assert sort_frame_names(names) == ["screenshot-1.jpg", "screenshot-2.jpg"]

    def test_sorted_frame_paths_reads_directory(self, tmp_path):
        for ordinal in (3, 11, 1):
            (tmp_path / frame_filename(ordinal)).write_bytes(b"x")
        (tmp_path / "ignore.log").write_text("noise")

        paths = sorted_frame_paths(tmp_path)

        assert [p.name for p in paths] == [
            "screenshot-1.jpg",
            "screenshot-3.jpg",
            "screenshot-11.jpg",
        ]

    def test_sorted_frame_paths_missing_directory(self, tmp_path):
        assert sorted_frame_paths(tmp_path / "nope") == []


class TestEvenlySpacedTimestamps:
    """Tests for picking sample points across a video."""

    def test_five_frames_over_sixty_seconds(self):
        assert evenly_spaced_timestamps(60.0, 5) == [10.0, 20.0, 30.0, 40.0, 50.0]

    def test_never_samples_first_or_last_instant(self):
        timestamps = evenly_spaced_timestamps(12.0, 3)

        assert timestamps[0] > 0
        assert timestamps[-1] < 12.0
        assert timestamps == sorted(timestamps)

    def test_unknown_duration_samples_start(self):
        assert evenly_spaced_timestamps(0, 5) == [0.0]

    def test_zero_count(self):
        assert evenly_spaced_timestamps(30.0, 0) == []
