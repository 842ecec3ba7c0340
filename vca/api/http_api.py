"""
HTTP API adapter for the VCA staging engine.

Architectural role:
- Expose one `WorkflowStateMachine` per session id over JSON endpoints.
- Validate operator input with `pydantic` schemas (`vca.api.schemas`).
- Delegate every state change and generation call to the state machine.
- Return the session snapshot plus any notifications raised by the call.

Endpoint responsibilities:
- `POST /v1/sessions`: create a session; `DELETE /v1/sessions/{id}` tears it
  down and cancels any running generation.
- `PUT /v1/sessions/{id}/product|container|scene|model|lift|prompt|template`:
  setters. Lift input is clamped to `[0, max_lift]` unless `clamp` is false.
- `POST /v1/sessions/{id}/advance|retreat|skip`: navigation.
- `POST /v1/sessions/{id}/generate|final-scene|stop`: generation control.
- `DELETE /v1/sessions/{id}/history/{index}`, `POST .../history/select`.
- `GET /v1/scenes`: preset scenes.

Input validation behavior:
- Unknown session id -> HTTP 404.
- Unknown preset scene / empty custom scene -> HTTP 400.
- Out-of-range history index -> HTTP 404.
- Schema violations -> HTTP 422 (FastAPI default).

Side effects:
- Sessions live in process memory on `app.state.sessions`; nothing survives a
  restart.
- Settings are read from the store opened by `open_settings_store`
  (`VCA_SETTINGS_PATH`).
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Request

from vca.api.schemas import (
    ContainerIn,
    GenerateIn,
    LiftIn,
    ModelIn,
    ProductIn,
    PromptIn,
    SceneIn,
    SelectImageIn,
    SkipIn,
    TemplateIn,
    scene_from_input,
)
from vca.core.notifications import BufferedNotifier
from vca.core.workflow import WorkflowStateMachine
from vca.image.service import ImageGenerationDispatcher
from vca.prompting.prompt_builder import unknown_tokens
from vca.prompting.scenes import PRESET_SCENES
from vca.settings.store import SettingsStore, open_settings_store


logger = logging.getLogger(__name__)


# ============================================================
# Session registry helpers
# ============================================================

def _get_machine(request: Request, session_id: str) -> WorkflowStateMachine:
    machine = request.app.state.sessions.get(session_id)
    if machine is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return machine


def _respond(session_id: str, machine: WorkflowStateMachine, **extra) -> dict:
    notifier = machine.notifier
    notices = notifier.drain() if isinstance(notifier, BufferedNotifier) else []
    body = {
        "session_id": session_id,
        "session": machine.snapshot(),
        "notifications": [
            {"message": n.message, "level": n.level, "duration_ms": n.duration_ms}
            for n in notices
        ],
    }
    body.update(extra)
    return body


# ============================================================
# Application factory
# ============================================================

def create_app(
    settings: Optional[SettingsStore] = None,
    dispatcher: Optional[ImageGenerationDispatcher] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
    - settings: Shared settings store; defaults to `open_settings_store()`.
    - dispatcher: Shared stateless provider dispatcher.
    """
    app = FastAPI(title="Visual Commerce Agent")
    app.state.settings = settings if settings is not None else open_settings_store()
    app.state.dispatcher = dispatcher or ImageGenerationDispatcher()
    app.state.sessions = {}

    @app.get("/v1/scenes")
    async def list_scenes():
        return {
            "data": [
                {"id": s.id, "name": s.name, "prompt_template": s.prompt_template}
                for s in PRESET_SCENES
            ]
        }

    # ------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------

    @app.post("/v1/sessions", status_code=201)
    async def create_session(request: Request):
        session_id = uuid.uuid4().hex
        machine = WorkflowStateMachine(
            settings=request.app.state.settings,
            dispatcher=request.app.state.dispatcher,
            notifier=BufferedNotifier(),
        )
        request.app.state.sessions[session_id] = machine
        logger.info("Created session %s", session_id)
        return _respond(session_id, machine)

    @app.get("/v1/sessions/{session_id}")
    async def get_session(session_id: str, request: Request):
        return _respond(session_id, _get_machine(request, session_id))

    @app.delete("/v1/sessions/{session_id}")
    async def delete_session(session_id: str, request: Request):
        machine = _get_machine(request, session_id)
        if machine.is_generating:
            machine.stop_generation()
        del request.app.state.sessions[session_id]
        logger.info("Deleted session %s", session_id)
        return {"session_id": session_id, "deleted": True}

    # ------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------

    @app.put("/v1/sessions/{session_id}/product")
    async def put_product(session_id: str, payload: ProductIn, request: Request):
        machine = _get_machine(request, session_id)
        machine.set_product(payload.to_spec())
        return _respond(session_id, machine)

    @app.put("/v1/sessions/{session_id}/container")
    async def put_container(session_id: str, payload: ContainerIn, request: Request):
        machine = _get_machine(request, session_id)
        machine.set_container(payload.to_spec())
        return _respond(session_id, machine)

    @app.put("/v1/sessions/{session_id}/scene")
    async def put_scene(session_id: str, payload: SceneIn, request: Request):
        machine = _get_machine(request, session_id)
        try:
            scene = scene_from_input(payload)
        except KeyError:
            raise HTTPException(status_code=400, detail=f"Unknown preset scene: {payload.preset_id}")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        machine.set_scene(scene)
        return _respond(session_id, machine)

    @app.put("/v1/sessions/{session_id}/model")
    async def put_model(session_id: str, payload: ModelIn, request: Request):
        machine = _get_machine(request, session_id)
        machine.set_model(payload.to_spec())
        return _respond(session_id, machine)

    @app.put("/v1/sessions/{session_id}/lift")
    async def put_lift(session_id: str, payload: LiftIn, request: Request):
        machine = _get_machine(request, session_id)
        lift = payload.lift
        if lift is not None and payload.clamp:
            lift = machine.clamp_lift(lift)
        machine.set_custom_lift(lift)
        return _respond(session_id, machine)

    @app.put("/v1/sessions/{session_id}/prompt")
    async def put_prompt(session_id: str, payload: PromptIn, request: Request):
        machine = _get_machine(request, session_id)
        machine.set_custom_prompt(payload.prompt)
        return _respond(session_id, machine)

    @app.put("/v1/sessions/{session_id}/template")
    async def put_template(session_id: str, payload: TemplateIn, request: Request):
        machine = _get_machine(request, session_id)
        if payload.template:
            machine.set_prompt_template(payload.template)
        else:
            machine.reset_prompt_template()
        return _respond(
            session_id, machine, unknown_tokens=unknown_tokens(payload.template)
        )

    # ------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------

    @app.post("/v1/sessions/{session_id}/advance")
    async def advance(session_id: str, request: Request):
        machine = _get_machine(request, session_id)
        await machine.advance()
        return _respond(session_id, machine)

    @app.post("/v1/sessions/{session_id}/retreat")
    async def retreat(session_id: str, request: Request):
        machine = _get_machine(request, session_id)
        await machine.retreat()
        return _respond(session_id, machine)

    @app.post("/v1/sessions/{session_id}/skip")
    async def skip(session_id: str, payload: SkipIn, request: Request):
        machine = _get_machine(request, session_id)
        await machine.skip_to(payload.step)
        return _respond(session_id, machine)

    # ------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------

    @app.post("/v1/sessions/{session_id}/generate")
    async def generate(session_id: str, request: Request, payload: Optional[GenerateIn] = None):
        machine = _get_machine(request, session_id)
        await machine.generate_preview(force_retry=payload.force_retry if payload else False)
        return _respond(session_id, machine)

    @app.post("/v1/sessions/{session_id}/final-scene")
    async def final_scene(session_id: str, request: Request):
        machine = _get_machine(request, session_id)
        await machine.generate_final_scene()
        return _respond(session_id, machine)

    @app.post("/v1/sessions/{session_id}/stop")
    async def stop(session_id: str, request: Request):
        machine = _get_machine(request, session_id)
        cancelled = machine.stop_generation()
        return _respond(session_id, machine, cancelled=cancelled)

    # ------------------------------------------------------------
    # History
    # ------------------------------------------------------------

    @app.delete("/v1/sessions/{session_id}/history/{index}")
    async def delete_history(session_id: str, index: int, request: Request):
        machine = _get_machine(request, session_id)
        try:
            machine.delete_history_item(index)
        except IndexError:
            raise HTTPException(status_code=404, detail=f"No history item at index {index}")
        return _respond(session_id, machine)

    @app.post("/v1/sessions/{session_id}/history/select")
    async def select_history(session_id: str, payload: SelectImageIn, request: Request):
        machine = _get_machine(request, session_id)
        machine.select_history_image(payload.image)
        return _respond(session_id, machine)

    return app


app = create_app()
