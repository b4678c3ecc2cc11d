"""
Frame naming, ordering and sampling.

The extractor writes frames as screenshot-1.jpg, screenshot-2.jpg, ...
The number in the name is the frame's ordinal. Frames must reach the model
in chronological order, so sorting is by the parsed ordinal rather than by
filename: "screenshot-2.jpg" comes before "screenshot-10.jpg".

Everything here is a pure function so it can be tested without ffmpeg.
"""

import re
from pathlib import Path
from typing import Optional


FRAME_PREFIX = "screenshot-"
FRAME_EXTENSION = "jpg"
FRAME_NAME_PATTERN = re.compile(r"^screenshot-(\d+)\.jpg$")


def frame_filename(ordinal: int) -> str:
    """Build the filename for a frame. Ordinals start at 1."""
    if ordinal < 1:
        raise ValueError("Frame ordinal must be at least 1")
    return f"{FRAME_PREFIX}{ordinal}.{FRAME_EXTENSION}"


def frame_ordinal(filename: str) -> Optional[int]:
    """Parse the ordinal out of a frame filename, or None if it isn't a frame."""
    match = FRAME_NAME_PATTERN.match(filename)
    if not match:
        return None
    return int(match.group(1))


def sort_frame_names(filenames: list[str]) -> list[str]:
    """Keep only frame filenames and order them by ordinal."""
    frames = []
    for name in filenames:
        ordinal = frame_ordinal(name)
        if ordinal is not None:
            frames.append((ordinal, name))
    return [name for _, name in sorted(frames)]


def sorted_frame_paths(directory: Path) -> list[Path]:
    """List the frames in a directory in ordinal order."""
    if not directory.is_dir():
        return []
    names = sort_frame_names([entry.name for entry in directory.iterdir() if entry.is_file()])
    return [directory / name for name in names]


def evenly_spaced_timestamps(duration_seconds: float, count: int) -> list[float]:
    """
    Pick `count` timestamps spread across the video.

    Splits the video into count + 1 equal segments and samples at each
    inner boundary, so the very first and very last frames (often black
    or a fade) are never used.
    """
    if count < 1:
        return []
    if duration_seconds <= 0:
        return [0.0]

    step = duration_seconds / (count + 1)
    return [round(step * i, 3) for i in range(1, count + 1)]
