"""Transcoding module.

Submits adaptive-bitrate HLS jobs to the managed transcoding service when a
video is uploaded or an operator asks for it, applies job completion
notifications to content records, and cleans up transcoded files when a
record is deleted.
"""

from edustream.modules.transcoding.abr import ABRLadder, ABRVariant, build_job_spec
from edustream.modules.transcoding.client import (
    TranscoderAPIError,
    TranscoderClient,
    TranscoderJob,
    TranscoderNotConfiguredError,
)
from edustream.modules.transcoding.layout import StorageLayout, get_default_layout
from edustream.modules.transcoding.models import (
    CommandStatus,
    StorageCleanupFailure,
    TranscodeCommand,
)
from edustream.modules.transcoding.service import TranscodingService

__all__ = [
    # Ladder and layout
    "ABRLadder",
    "ABRVariant",
    "build_job_spec",
    "StorageLayout",
    "get_default_layout",
    # Client
    "TranscoderAPIError",
    "TranscoderClient",
    "TranscoderJob",
    "TranscoderNotConfiguredError",
    # Models
    "CommandStatus",
    "StorageCleanupFailure",
    "TranscodeCommand",
    # Service
    "TranscodingService",
]
