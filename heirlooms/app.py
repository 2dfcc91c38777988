# app.py
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from starlette import status
from starlette.concurrency import run_in_threadpool

from .captions import CaptionGenerator
from .config import (
    MODEL_CHOICES,
    TEMPLATES_DIR,
    config_path_from_env,
    data_dir_from_env,
    default_ai_config_from_env,
    get_openai_api_key,
    load_ai_config,
    sanitize_ai_config,
    save_ai_config,
)
from .errors import HeirloomError
from .logging_setup import configure_logging
from .openai_client import ResponsesClient
from .pipeline import STATUS_PROCESSING, AnalysisPipeline, Captioner, Generator, describe_status
from .storage import KeyedLease
from .store import ArtifactStore, CollectionStore
from .summary import SummaryGenerator
from .views import ViewCache, fingerprint

logger = logging.getLogger(__name__)


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        body = {}
    return body if isinstance(body, dict) else {}


def _apply_ai_config(app: FastAPI, cfg: Dict[str, Any]) -> None:
    """Push runtime AI settings into the live generator and pipeline."""
    app.state.ai_config = cfg
    generator = app.state.generator
    if isinstance(generator, SummaryGenerator):
        generator.model = cfg["summary_model"]
        generator.max_output_tokens = cfg["max_output_tokens"]
        generator.temperature = cfg["temperature"]
    captioner = app.state.captioner
    if isinstance(captioner, CaptionGenerator):
        captioner.model = cfg["vision_model"]
    pipeline: AnalysisPipeline = app.state.pipeline
    if cfg["analysis_exclusive"]:
        if pipeline.lease is None:
            pipeline.lease = app.state.lease
    else:
        pipeline.lease = None


def create_app(
    data_dir: Optional[Path] = None,
    config_path: Optional[Path] = None,
    generator: Optional[Generator] = None,
    captioner: Optional[Captioner] = None,
) -> FastAPI:
    """Build the application and its long-lived collaborators.

    The store, OpenAI client, generators, view cache and pipeline are created
    once here and shared through ``app.state``.
    """
    configure_logging()
    data_dir = data_dir or data_dir_from_env()
    config_path = config_path or config_path_from_env()
    ai_config = load_ai_config(config_path)

    client: Optional[ResponsesClient] = None
    if generator is None or captioner is None:
        client = ResponsesClient(
            api_key=get_openai_api_key(),
            base_url=ai_config["base_url"],
            timeout_seconds=ai_config["timeout_seconds"],
        )
    if generator is None:
        generator = SummaryGenerator(client)
    if captioner is None:
        captioner = CaptionGenerator(client, timeout_seconds=ai_config["timeout_seconds"])

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Heirlooms starting (data dir %s)", data_dir)
        yield
        if client is not None:
            client.close()
        if isinstance(captioner, CaptionGenerator):
            captioner.close()

    app = FastAPI(title="Heirlooms", lifespan=lifespan)
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    artifacts = ArtifactStore(data_dir / "artifacts")
    collections = CollectionStore(data_dir / "collections")
    views = ViewCache()
    lease = KeyedLease(data_dir / "locks")

    app.state.store = artifacts
    app.state.collections = collections
    app.state.views = views
    app.state.lease = lease
    app.state.generator = generator
    app.state.captioner = captioner
    app.state.config_path = config_path
    app.state.pipeline = AnalysisPipeline(artifacts, generator, views=views, lease=None, captioner=captioner)
    _apply_ai_config(app, ai_config)

    def _stale_after() -> float:
        return float(app.state.ai_config["stale_processing_seconds"])

    def _artifact_payload(artifact: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(artifact)
        payload.update(describe_status(artifact, _stale_after()))
        return payload

    @app.exception_handler(HeirloomError)
    async def heirloom_error_handler(request: Request, exc: HeirloomError) -> JSONResponse:
        return JSONResponse({"error": exc.message, "code": exc.code}, status_code=exc.status_code)

    # --- Analysis ---

    @app.post("/api/analyze/summary", response_class=JSONResponse)
    async def analyze_summary(request: Request) -> JSONResponse:
        body = await _json_body(request)
        artifact_id = body.get("artifactId")
        if not artifact_id or not isinstance(artifact_id, str):
            return JSONResponse(
                {"error": "artifactId is required", "code": "bad_request"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        summary = await run_in_threadpool(app.state.pipeline.analyze, artifact_id)
        return JSONResponse({"ok": True, "object": summary})

    @app.post("/api/analyze/image-single", response_class=JSONResponse)
    async def analyze_image_single(request: Request) -> JSONResponse:
        body = await _json_body(request)
        artifact_id = body.get("artifactId")
        image_url = body.get("imageUrl")
        if not artifact_id or not image_url:
            return JSONResponse(
                {"error": "artifactId and imageUrl are required", "code": "bad_request"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        artifact = await run_in_threadpool(app.state.pipeline.caption_image, str(artifact_id), str(image_url))
        return JSONResponse({"ok": True, "caption": artifact["image_captions"][image_url]})

    # --- Collections ---

    @app.post("/api/collections", response_class=JSONResponse, status_code=status.HTTP_201_CREATED)
    async def create_collection(request: Request) -> JSONResponse:
        body = await _json_body(request)
        collection = collections.create(
            title=str(body.get("title") or ""),
            description=str(body.get("description") or ""),
            is_public=bool(body.get("is_public", False)),
        )
        return JSONResponse(collection, status_code=status.HTTP_201_CREATED)

    @app.get("/api/collections", response_class=JSONResponse)
    async def list_collections() -> JSONResponse:
        return JSONResponse({"collections": collections.all()})

    @app.get("/api/collections/{slug}", response_class=JSONResponse)
    async def get_collection(slug: str) -> JSONResponse:
        return JSONResponse(collections.get_by_slug(slug))

    @app.get("/api/collections/{collection_id}/artifacts", response_class=JSONResponse)
    async def list_collection_artifacts(collection_id: str) -> JSONResponse:
        collection = collections.get_by_slug(collection_id)
        items = [_artifact_payload(a) for a in artifacts.list_by_collection(collection["id"])]
        return JSONResponse({"collection": collection, "artifacts": items})

    # --- Artifacts ---

    @app.post("/api/artifacts", response_class=JSONResponse, status_code=status.HTTP_201_CREATED)
    async def create_artifact(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body.get("collection_id"):
            collections.get(str(body["collection_id"]))
        artifact = artifacts.create(body)
        return JSONResponse(_artifact_payload(artifact), status_code=status.HTTP_201_CREATED)

    @app.get("/api/artifacts/{artifact_id}", response_class=JSONResponse)
    async def get_artifact(artifact_id: str) -> JSONResponse:
        return JSONResponse(_artifact_payload(artifacts.get(artifact_id)))

    @app.patch("/api/artifacts/{artifact_id}", response_class=JSONResponse)
    async def update_artifact(artifact_id: str, request: Request) -> JSONResponse:
        body = await _json_body(request)
        if not body:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided")
        if body.get("collection_id"):
            collections.get(str(body["collection_id"]))
        artifact = artifacts.edit(artifact_id, body)
        views.invalidate_artifact(artifact_id)
        return JSONResponse(_artifact_payload(artifact))

    @app.delete("/api/artifacts/{artifact_id}", response_class=JSONResponse)
    async def delete_artifact(artifact_id: str) -> JSONResponse:
        artifacts.delete(artifact_id)
        views.invalidate_artifact(artifact_id)
        lease.discard(artifact_id)
        return JSONResponse({"message": f"Removed {artifact_id}"})

    @app.get("/api/artifacts/{artifact_id}/adjacent", response_class=JSONResponse)
    async def adjacent_artifacts(artifact_id: str, collection_id: Optional[str] = None) -> JSONResponse:
        if not collection_id:
            collection_id = artifacts.get(artifact_id).get("collection_id")
        if not collection_id:
            return JSONResponse({"previous": None, "next": None, "current_position": 0, "total_count": 0})
        return JSONResponse(artifacts.adjacent(artifact_id, collection_id))

    @app.get("/api/public/artifacts", response_class=JSONResponse)
    async def public_artifacts() -> JSONResponse:
        return JSONResponse({"artifacts": [_artifact_payload(a) for a in artifacts.list_public(collections)]})

    # --- Pages ---

    def _render_artifact_page(template_name: str, path: str, artifact_id: str) -> HTMLResponse:
        artifact = artifacts.get(artifact_id)
        state = describe_status(artifact, _stale_after())
        collection = collections.find(artifact.get("collection_id") or "")

        def render() -> str:
            return templates.get_template(template_name).render(
                artifact=artifact, analysis=state, collection=collection
            )

        # In-flight pages change without a record write (staleness), so skip the cache.
        if state["analysis_status"] == STATUS_PROCESSING:
            return HTMLResponse(render())
        # Other workers write the same files; the stamp catches their changes.
        stamp = fingerprint(artifact, state, collection)
        return HTMLResponse(views.get_or_render(path, stamp, render))

    @app.get("/artifacts/{artifact_id}", response_class=HTMLResponse)
    async def artifact_detail(artifact_id: str) -> HTMLResponse:
        return _render_artifact_page("artifact_detail.html", f"/artifacts/{artifact_id}", artifact_id)

    @app.get("/artifacts/{artifact_id}/edit", response_class=HTMLResponse)
    async def artifact_edit(artifact_id: str) -> HTMLResponse:
        return _render_artifact_page("artifact_edit.html", f"/artifacts/{artifact_id}/edit", artifact_id)

    # --- Admin config ---

    @app.get("/admin/config", response_class=JSONResponse)
    async def get_admin_config() -> JSONResponse:
        return JSONResponse({"ai": app.state.ai_config, "model_options": MODEL_CHOICES})

    @app.post("/admin/config", response_class=JSONResponse)
    async def update_admin_config(request: Request) -> JSONResponse:
        body = await _json_body(request)
        ai = body.get("ai", body)
        cfg = sanitize_ai_config({**app.state.ai_config, **(ai if isinstance(ai, dict) else {})})
        cfg = save_ai_config(cfg, app.state.config_path)
        _apply_ai_config(app, cfg)
        logger.info("AI configuration updated")
        return JSONResponse({"ai": cfg, "message": "Configuration updated and saved"})

    @app.post("/admin/config/reset", response_class=JSONResponse)
    async def reset_admin_config() -> JSONResponse:
        cfg = save_ai_config(default_ai_config_from_env(), app.state.config_path)
        _apply_ai_config(app, cfg)
        return JSONResponse({"ai": cfg, "message": "Configuration reset to defaults"})

    return app
