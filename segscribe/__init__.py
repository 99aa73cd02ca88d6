# segscribe/__init__.py
# ======================
# SegScribe: segmented, queue-distributed audio transcription.
#
#   audio/     chunk planning and WAV slicing
#   queue/     work queue (RabbitMQ or in-process) and wire messages
#   stt/       transcription engines
#   dispatch   publishes one job per window
#   worker     consumes jobs, writes result artifacts
#   store      on-disk session layout
#   stitcher   overlap-aware transcript merge
#   progress   session state and percentage
#   service    submit / status / assemble / segments
#   api/       FastAPI transport

__version__ = "1.0.0"
