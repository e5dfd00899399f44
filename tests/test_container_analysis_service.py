import pytest
from aiohttp import web

from binauthz_demo.payloads.resources import NotePayload
from binauthz_demo.services.container_analysis_service import (
    ContainerAnalysisError,
    ContainerAnalysisService,
    NoteAlreadyExistsError,
)
from binauthz_demo.services.gcloud_service import GcloudService


async def _start_notes_server(notes: dict, captured: list):
    async def handle_create(request: web.Request):
        captured.append({
            "method": "POST",
            "auth": request.headers.get("Authorization"),
            "note_id": request.query.get("noteId"),
            "body": await request.json(),
        })
        note_id = request.query["noteId"]
        if note_id in notes:
            return web.json_response({"error": {"status": "ALREADY_EXISTS"}}, status=409)
        if note_id == "forbidden":
            return web.json_response({"error": {"status": "PERMISSION_DENIED"}}, status=403)
        notes[note_id] = await request.json()
        return web.json_response(notes[note_id])

    async def handle_get(request: web.Request):
        note_id = request.match_info["note_id"]
        if note_id not in notes:
            return web.json_response({"error": {"status": "NOT_FOUND"}}, status=404)
        return web.json_response(notes[note_id])

    async def handle_delete(request: web.Request):
        captured.append({"method": "DELETE", "note_id": request.match_info["note_id"]})
        notes.pop(request.match_info["note_id"], None)
        return web.json_response({})

    app = web.Application()
    app.router.add_post("/v1beta1/projects/{project}/notes/", handle_create)
    app.router.add_get("/v1beta1/projects/{project}/notes/{note_id}", handle_get)
    app.router.add_delete("/v1beta1/projects/{project}/notes/{note_id}", handle_delete)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = site._server.sockets[0].getsockname()[1]
    return runner, f"http://127.0.0.1:{port}/v1beta1"


@pytest.fixture
def service_factory(fake_commands, test_settings):
    def _factory(base_url: str) -> ContainerAnalysisService:
        settings = test_settings.model_copy(update={"CONTAINER_ANALYSIS_URL": base_url})
        return ContainerAnalysisService(GcloudService(fake_commands, settings), settings)

    return _factory


@pytest.mark.asyncio
async def test_note_lifecycle(service_factory):
    notes, captured = {}, []
    runner, base_url = await _start_notes_server(notes, captured)
    try:
        service = service_factory(base_url)
        note = NotePayload.for_authority("p", "Human-Attestor-Note", "Human Attestation Note Demo")

        assert await service.get_note("p", "Human-Attestor-Note") is None

        await service.create_note("p", "Human-Attestor-Note", note)
        assert captured[0]["auth"] == "Bearer test-token"
        assert captured[0]["note_id"] == "Human-Attestor-Note"
        assert captured[0]["body"] == {
            "name": "projects/p/notes/Human-Attestor-Note",
            "attestation_authority": {"hint": {"human_readable_name": "Human Attestation Note Demo"}},
        }

        fetched = await service.get_note("p", "Human-Attestor-Note")
        assert fetched["name"] == "projects/p/notes/Human-Attestor-Note"

        await service.delete_note("p", "Human-Attestor-Note")
        assert notes == {}
    finally:
        await runner.cleanup()


@pytest.mark.asyncio
async def test_duplicate_note_is_distinguishable(service_factory):
    notes, captured = {"dup": {"name": "projects/p/notes/dup"}}, []
    runner, base_url = await _start_notes_server(notes, captured)
    try:
        service = service_factory(base_url)

        with pytest.raises(NoteAlreadyExistsError) as exc_info:
            await service.create_note("p", "dup", NotePayload.for_authority("p", "dup", "d"))
        assert exc_info.value.status == 409
    finally:
        await runner.cleanup()


@pytest.mark.asyncio
async def test_other_failures_are_not_duplicates(service_factory):
    runner, base_url = await _start_notes_server({}, [])
    try:
        service = service_factory(base_url)

        with pytest.raises(ContainerAnalysisError) as exc_info:
            await service.create_note("p", "forbidden", NotePayload.for_authority("p", "forbidden", "d"))
        assert not isinstance(exc_info.value, NoteAlreadyExistsError)
        assert exc_info.value.status == 403
    finally:
        await runner.cleanup()
