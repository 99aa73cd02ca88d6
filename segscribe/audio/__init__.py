# segscribe/audio/__init__.py
# ============================
# Audio Layer: SegScribe
#
#   planner.py  pure chunk planning (duration -> windows)
#   slicer.py   pydub resolver that cuts one WAV per window

from segscribe.audio.planner import count_chunks, plan_chunks  # noqa: F401
from segscribe.audio.slicer import (                           # noqa: F401
    AudioArtifactResolver,
    PydubSegmentResolver,
    segment_filename,
)

__all__ = [
    "count_chunks",
    "plan_chunks",
    "AudioArtifactResolver",
    "PydubSegmentResolver",
    "segment_filename",
]
