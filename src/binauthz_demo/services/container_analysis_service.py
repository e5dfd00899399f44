import logging
from typing import Any, Optional

import aiohttp

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.core.logger import _m, get_extra_info
from binauthz_demo.payloads.resources import NotePayload
from binauthz_demo.services.gcloud_service import GcloudService

logger = logging.getLogger(__name__)


class ContainerAnalysisError(RuntimeError):
    """Raised when the Container Analysis API rejects a request."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NoteAlreadyExistsError(ContainerAnalysisError):
    """The note id is already taken in the project."""


class ContainerAnalysisService:
    """Minimal client for Container Analysis notes, authenticated with the gcloud access token."""

    def __init__(self, gcloud_service: GcloudService, settings: Optional[Settings] = None):
        self.gcloud_service = gcloud_service
        self.settings = settings or default_settings

    def _notes_url(self, project: str) -> str:
        return f"{self.settings.CONTAINER_ANALYSIS_URL.rstrip('/')}/projects/{project}/notes"

    async def _headers(self) -> dict[str, str]:
        token = await self.gcloud_service.print_access_token()
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, url: str, **kwargs) -> tuple[int, Any]:
        timeout = aiohttp.ClientTimeout(total=self.settings.HTTP_TIMEOUT)
        headers = await self._headers()
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(method, url, headers=headers, **kwargs) as response:
                if response.status >= 400:
                    snippet = await response.text()
                    return response.status, snippet[:200] if snippet else "<empty>"
                try:
                    return response.status, await response.json()
                except aiohttp.ContentTypeError:
                    return response.status, await response.text()

    async def get_note(self, project: str, note_id: str) -> Optional[dict[str, Any]]:
        status, body = await self._request("GET", f"{self._notes_url(project)}/{note_id}")
        if status == 404:
            return None
        if status >= 400:
            raise ContainerAnalysisError(f"Fetching note {note_id} returned {status}: {body}", status)
        return body

    async def create_note(self, project: str, note_id: str, note: NotePayload) -> dict[str, Any]:
        url = f"{self._notes_url(project)}/"
        logger.info(_m("Submitting note", extra=get_extra_info({"project": project, "note_id": note_id})))
        status, body = await self._request(
            "POST",
            url,
            params={"noteId": note_id},
            json=note.model_dump(),
        )
        if status == 409:
            raise NoteAlreadyExistsError(f"Note {note_id} already exists in {project}", status)
        if status >= 400:
            raise ContainerAnalysisError(f"Creating note {note_id} returned {status}: {body}", status)
        return body

    async def delete_note(self, project: str, note_id: str) -> None:
        status, body = await self._request("DELETE", f"{self._notes_url(project)}/{note_id}")
        if status >= 400:
            raise ContainerAnalysisError(f"Deleting note {note_id} returned {status}: {body}", status)
