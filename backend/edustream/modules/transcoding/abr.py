"""Adaptive Bitrate (ABR) encoding ladder and job spec construction.

Both the upload trigger and the manual re-transcode build their job request
with ``build_job_spec``, so the two paths always submit the same ladder.
"""

from dataclasses import dataclass, field
from typing import Optional

AUDIO_STREAM_KEY = "audio-stream"
MUX_CONTAINER = "fmp4"
DEFAULT_MANIFEST_NAME = "manifest.m3u8"


@dataclass(frozen=True)
class ABRVariant:
    """A single H.264 rendition in an ABR ladder."""
    key: str  # mux stream key, also the rendition label in the manifest
    width: int
    height: int
    bitrate: int  # bps
    frame_rate: int = 30

    @property
    def stream_key(self) -> str:
        return f"video-stream-{self.key}"


@dataclass(frozen=True)
class AudioRendition:
    """Audio stream shared by every variant."""
    codec: str = "aac"
    bitrate: int = 128000  # bps


@dataclass(frozen=True)
class ABRLadder:
    """Complete ABR ladder configuration."""
    variants: tuple[ABRVariant, ...] = field(default_factory=tuple)
    audio: AudioRendition = field(default_factory=AudioRendition)
    manifest_name: str = DEFAULT_MANIFEST_NAME

    @classmethod
    def create_standard_ladder(cls, manifest_name: str = DEFAULT_MANIFEST_NAME) -> "ABRLadder":
        """Create the 360p + 720p ladder used for course videos."""
        return cls(
            variants=(
                ABRVariant(key="360p", width=640, height=360, bitrate=550000),
                ABRVariant(key="720p", width=1280, height=720, bitrate=2500000),
            ),
            audio=AudioRendition(codec="aac", bitrate=128000),
            manifest_name=manifest_name,
        )

    def to_job_config(self) -> dict:
        """Render the ladder as a Transcoder API job config.

        Raises:
            ValueError: If the ladder fails ``validate_abr_config``
        """
        is_valid, errors = validate_abr_config(self)
        if not is_valid:
            raise ValueError(f"Invalid ABR ladder: {'; '.join(errors)}")

        elementary_streams = [
            {
                "key": variant.stream_key,
                "videoStream": {
                    "h264": {
                        "heightPixels": variant.height,
                        "widthPixels": variant.width,
                        "bitrateBps": variant.bitrate,
                        "frameRate": variant.frame_rate,
                    }
                },
            }
            for variant in self.variants
        ]
        elementary_streams.append({
            "key": AUDIO_STREAM_KEY,
            "audioStream": {"codec": self.audio.codec, "bitrateBps": self.audio.bitrate},
        })

        mux_streams = [
            {
                "key": variant.key,
                "container": MUX_CONTAINER,
                "elementaryStreams": [variant.stream_key, AUDIO_STREAM_KEY],
            }
            for variant in self.variants
        ]

        return {
            "elementaryStreams": elementary_streams,
            "muxStreams": mux_streams,
            "manifests": [
                {
                    "fileName": self.manifest_name,
                    "type": "HLS",
                    "muxStreams": [variant.key for variant in self.variants],
                }
            ],
        }


def validate_abr_config(ladder: ABRLadder) -> tuple[bool, list[str]]:
    """Validate ABR ladder configuration.

    Args:
        ladder: ABR ladder to validate

    Returns:
        tuple: (is_valid, list of error messages)
    """
    errors = []

    if not ladder.variants:
        errors.append("ABR ladder must have at least one variant")

    keys = [v.key for v in ladder.variants]
    if len(keys) != len(set(keys)):
        errors.append("ABR ladder has duplicate variant keys")

    for variant in ladder.variants:
        if variant.width <= 0 or variant.height <= 0:
            errors.append(f"Variant {variant.key} has invalid dimensions")
        if variant.bitrate <= 0:
            errors.append(f"Variant {variant.key} has invalid bitrate")
        if variant.frame_rate <= 0:
            errors.append(f"Variant {variant.key} has invalid frame rate")

    # Renditions must be ordered from lowest to highest
    for prev, curr in zip(ladder.variants, ladder.variants[1:]):
        if curr.bitrate <= prev.bitrate:
            errors.append(f"Variant {curr.key} bitrate should be higher than {prev.key}")
        if curr.height <= prev.height:
            errors.append(f"Variant {curr.key} height should be higher than {prev.key}")

    if ladder.audio.bitrate <= 0:
        errors.append("Audio rendition has invalid bitrate")

    if not ladder.manifest_name:
        errors.append("Manifest file name is required")

    return len(errors) == 0, errors


def build_job_spec(
    input_uri: str,
    output_uri: str,
    pubsub_topic: Optional[str] = None,
    manifest_name: str = DEFAULT_MANIFEST_NAME,
) -> dict:
    """Build the full Transcoder API job for one source video.

    Args:
        input_uri: URI of the uploaded source object
        output_uri: URI prefix the renditions and manifest are written under
        pubsub_topic: Topic the job service publishes lifecycle events to
        manifest_name: File name of the HLS manifest

    Returns:
        dict: Job body ready to submit

    Raises:
        ValueError: If the ladder configuration is invalid
    """
    config = ABRLadder.create_standard_ladder(manifest_name).to_job_config()
    if pubsub_topic:
        config["pubsubDestination"] = {"topic": pubsub_topic}

    return {
        "inputUri": input_uri,
        "outputUri": output_uri,
        "config": config,
    }
