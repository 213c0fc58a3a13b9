"""Bucket layout for source uploads and transcoded artifacts.

Maps an uploaded object path to the URIs a job reads and writes, and maps a
job's input URI back to the object path stored on the content record.
"""

import posixpath
from dataclasses import dataclass
from typing import Optional

from edustream.core.config import settings


@dataclass(frozen=True)
class StorageLayout:
    """Where uploads land and where their renditions are written."""
    bucket: str
    scheme: str = "gs"
    intake_prefix: str = "contents/videos/"
    transcoded_prefix: str = "transcoded-videos/"
    manifest_name: str = "manifest.m3u8"

    @property
    def bucket_uri(self) -> str:
        return f"{self.scheme}://{self.bucket}/"

    def is_video_intake_path(self, path: Optional[str]) -> bool:
        """Check if an object path lies under the video intake prefix."""
        return bool(path) and path.startswith(self.intake_prefix)

    def input_uri_for(self, path: str) -> str:
        return f"{self.bucket_uri}{path}"

    def output_prefix_for(self, path: str) -> str:
        """Object key prefix holding every artifact derived from ``path``.

        Keyed by the base filename, e.g. ``contents/videos/old.mp4`` maps to
        ``transcoded-videos/old.mp4/``.
        """
        return f"{self.transcoded_prefix}{posixpath.basename(path)}/"

    def output_uri_for(self, path: str) -> str:
        return f"{self.bucket_uri}{self.output_prefix_for(path)}"

    def path_from_input_uri(self, input_uri: str) -> str:
        """Strip the bucket URI from a job input URI.

        URIs outside this bucket are returned unchanged and will not match
        any record.
        """
        if input_uri.startswith(self.bucket_uri):
            return input_uri[len(self.bucket_uri):]
        return input_uri

    def manifest_uri(self, output_uri: str) -> str:
        """URI of the HLS manifest inside a job's output URI."""
        if output_uri.endswith("/"):
            return f"{output_uri}{self.manifest_name}"
        return f"{output_uri}/{self.manifest_name}"


def get_default_layout() -> StorageLayout:
    """Build the layout from application settings."""
    return StorageLayout(
        bucket=settings.VIDEO_BUCKET,
        scheme=settings.STORAGE_URI_SCHEME,
        intake_prefix=settings.VIDEO_INTAKE_PREFIX,
        transcoded_prefix=settings.TRANSCODED_PREFIX,
        manifest_name=settings.HLS_MANIFEST_NAME,
    )
