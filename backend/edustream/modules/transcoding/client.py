"""Transcoder API client.

Submits and deletes jobs on the managed transcoding service over its REST
interface. Job lifecycle events are not polled here; the service publishes
them to a Pub/Sub topic.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from edustream.core.config import settings

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class TranscoderAPIError(Exception):
    """Exception for Transcoder API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class TranscoderNotConfiguredError(TranscoderAPIError):
    """Exception when no project is configured for the job service."""
    pass


@dataclass
class TranscoderJob:
    """Job handle returned by the service at submission time."""
    name: str
    state: Optional[str] = None


class TranscoderClient:
    """Client for the Transcoder API jobs resource."""

    def __init__(
        self,
        project_number: Optional[str] = None,
        location: Optional[str] = None,
        api_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        credentials: Optional[Any] = None,
    ):
        """Initialize Transcoder API client.

        Args:
            project_number: Cloud project number owning the jobs
            location: Service region
            api_url: REST base URL
            access_token: Static OAuth bearer token, used instead of credentials
            timeout: Request timeout in seconds
            http_client: Shared client to send requests with
            credentials: google-auth credentials; Application Default
                Credentials are loaded on first use when omitted
        """
        self.project_number = project_number if project_number is not None else settings.GCP_PROJECT_NUMBER
        self.location = location or settings.TRANSCODER_LOCATION
        self.api_url = (api_url or settings.TRANSCODER_API_URL).rstrip("/")
        self.access_token = access_token if access_token is not None else settings.TRANSCODER_ACCESS_TOKEN
        self.timeout = timeout or settings.TRANSCODER_TIMEOUT_SECONDS
        self._http_client = http_client
        self._credentials = credentials

    @property
    def is_configured(self) -> bool:
        return bool(self.project_number)

    @property
    def parent(self) -> str:
        return f"projects/{self.project_number}/locations/{self.location}"

    async def _bearer_token(self) -> str:
        """Return a valid access token, refreshing the credentials when expired.

        Raises:
            TranscoderAPIError: If no credentials can be loaded or refreshed
        """
        if self.access_token:
            return self.access_token

        import google.auth
        from google.auth.exceptions import GoogleAuthError
        from google.auth.transport.requests import Request

        try:
            if self._credentials is None:
                self._credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
            if not self._credentials.valid:
                # refresh() does blocking HTTP
                await asyncio.to_thread(self._credentials.refresh, Request())
        except GoogleAuthError as e:
            raise TranscoderAPIError(f"Could not obtain Transcoder credentials: {e}") from e
        return self._credentials.token

    async def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {await self._bearer_token()}",
        }

    async def _request(self, method: str, url: str, json: Optional[dict] = None) -> httpx.Response:
        headers = await self._headers()
        try:
            if self._http_client is not None:
                return await self._http_client.request(
                    method, url, json=json, headers=headers, timeout=self.timeout
                )
            async with httpx.AsyncClient() as client:
                return await client.request(
                    method, url, json=json, headers=headers, timeout=self.timeout
                )
        except httpx.HTTPError as e:
            raise TranscoderAPIError(f"Transcoder request failed: {e}") from e

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        message = error_data.get("error", {}).get("message") if isinstance(error_data, dict) else None
        raise TranscoderAPIError(
            message or f"API request failed: {response.status_code}",
            status_code=response.status_code,
            details=error_data if isinstance(error_data, dict) else {},
        )

    async def create_job(self, job_spec: dict) -> TranscoderJob:
        """Submit a transcoding job.

        Args:
            job_spec: Job body built by ``build_job_spec``

        Returns:
            TranscoderJob: Handle carrying the full job resource name

        Raises:
            TranscoderNotConfiguredError: If no project number is set
            TranscoderAPIError: If the service rejects the job
        """
        if not self.is_configured:
            raise TranscoderNotConfiguredError("Transcoder project number is not configured")

        response = await self._request("POST", f"{self.api_url}/{self.parent}/jobs", json=job_spec)
        self._raise_for_error(response)

        data = response.json()
        name = data.get("name")
        if not name:
            raise TranscoderAPIError("Transcoder response did not include a job name", details=data)
        return TranscoderJob(name=name, state=data.get("state"))

    async def delete_job(self, job_name: str) -> None:
        """Delete (and thereby cancel) a job.

        Args:
            job_name: Full resource name returned by ``create_job``

        Raises:
            TranscoderAPIError: If the service rejects the request
        """
        response = await self._request("DELETE", f"{self.api_url}/{job_name}")
        self._raise_for_error(response)
