"""
Web server for the speaker worker.

Builds the voice catalog and the coordinator at startup, serves the HTTP
interface and, when redis is configured, the message-queue interface.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

import redis.asyncio as redis
from fastapi import Body, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates

from .cache import ContentCache
from .catalog import build_catalog
from .config import RuntimeConfig, Settings
from .coordinator import SpeakCoordinator
from .errors import SpeakerError
from .implementations.baidu_tts import BaiduTextToSpeech
from .messaging import MessageBus, RedisEventPublisher
from .providers import build_providers
from .supervisor import PlaybackSupervisor

logger = logging.getLogger(__name__)

# Exit status after an unhandled error; an external supervisor restarts us
CRASH_EXIT_CODE = 127

# Refresh the Baidu token this long before it expires
TOKEN_REFRESH_MARGIN = 60.0

base_dir = os.path.dirname(os.path.abspath(__file__))
templates = Jinja2Templates(directory=os.path.join(base_dir, "templates"))


class HistoryFeed:
    """Pushes each spoken utterance to connected web clients"""

    def __init__(self):
        self.clients: Set[WebSocket] = set()

    async def __call__(self, entry: Dict[str, Any]) -> None:
        for websocket in list(self.clients):
            try:
                await websocket.send_json(entry)
            except (WebSocketDisconnect, RuntimeError):
                self.clients.discard(websocket)


def install_crash_handler(loop: asyncio.AbstractEventLoop, coordinator: SpeakCoordinator) -> None:
    """Fail fast: kill any playback and exit on an unhandled error"""

    def handle(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        error = context.get("exception")
        # Dropped client connections are routine for a server
        if error is None or isinstance(error, ConnectionError):
            loop.default_exception_handler(context)
            return
        logger.critical(f"Caught exception: {context.get('message')}", exc_info=error)
        coordinator.shutdown()
        os._exit(CRASH_EXIT_CODE)

    loop.set_exception_handler(handle)


async def refresh_baidu_token(provider: BaiduTextToSpeech) -> None:
    """Keep the Baidu access token fresh for as long as the server runs"""
    loop = asyncio.get_running_loop()
    while True:
        delay = max(provider.expires_in - TOKEN_REFRESH_MARGIN, TOKEN_REFRESH_MARGIN)
        await asyncio.sleep(delay)
        try:
            await loop.run_in_executor(None, provider.authenticate)
        except Exception as error:
            logger.error(f"Baidu token refresh failed: {error}")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting speaker worker")
        loop = asyncio.get_running_loop()
        background = []

        providers = build_providers(settings)
        baidu = providers.get(BaiduTextToSpeech.name)
        if baidu is not None:
            logger.info("Getting Baidu access token")
            await loop.run_in_executor(None, baidu.authenticate)

        # Requests are only served once the catalog exists; failure aborts startup
        catalog = await loop.run_in_executor(None, build_catalog, providers.values())

        cache = ContentCache(settings.cache_dir)
        cache.create()

        redis_client = redis.from_url(settings.redis_url) if settings.redis_url else None
        coordinator = SpeakCoordinator(
            config=RuntimeConfig.from_settings(settings),
            catalog=catalog,
            cache=cache,
            supervisor=PlaybackSupervisor(
                command=settings.playback_command,
                success_signals=settings.playback_success_signals,
            ),
            providers=providers,
            publisher=RedisEventPublisher(redis_client) if redis_client else None,
            speaker_id=settings.speaker_id,
            playback_policy=settings.playback_policy,
            chunk_size=settings.stream_chunk_size,
        )
        app.state.coordinator = coordinator
        app.state.history = HistoryFeed()
        coordinator.history_listeners.append(app.state.history)
        install_crash_handler(loop, coordinator)

        if redis_client is not None:
            background.append(asyncio.create_task(MessageBus(redis_client, coordinator).run()))
        if baidu is not None:
            background.append(asyncio.create_task(refresh_baidu_token(baidu)))

        logger.info("Speaker worker ready")

        yield

        logger.info("Shutting down speaker worker")
        coordinator.shutdown()
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title="Speaker Worker",
        description="Speech synthesis and playback for other processes",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["X-Requested-With", "Content-Type"],
    )

    @app.get("/", response_class=HTMLResponse)
    async def get_index(request: Request):
        """Return a page listing the available languages and voices."""
        languages = request.app.state.coordinator.catalog.as_dict()
        return templates.TemplateResponse(request, "index.html", {"languages": languages})

    @app.get("/languages")
    async def get_languages(request: Request):
        return request.app.state.coordinator.catalog.as_dict()

    @app.post("/")
    async def speak(request: Request, params: Dict[str, Any] = Body(...)):
        reply = await request.app.state.coordinator.speak(params)
        return reply.to_payload()

    @app.post("/synthesize")
    async def synthesize(request: Request, params: Dict[str, Any] = Body(...)):
        try:
            audio = await request.app.state.coordinator.get_synthesized_audio(params)
        except SpeakerError as error:
            return JSONResponse({"status": "error", "message": error.reply_message}, status_code=400)
        return Response(content=audio, media_type="audio/wav")

    @app.post("/stop")
    async def stop(request: Request):
        return request.app.state.coordinator.stop().to_payload()

    @app.websocket("/ws/history")
    async def websocket_history(websocket: WebSocket):
        history: HistoryFeed = websocket.app.state.history
        history.clients.add(websocket)
        await websocket.accept()
        logger.info("History client connected")
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("History client disconnected")
        finally:
            history.clients.discard(websocket)

    return app
