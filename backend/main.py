"""
ShelfSeeker — FastAPI application entry point.

Loads settings, starts the Transfer Manager on startup,
serves the REST API and WebSocket endpoint.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from api.routes import init_routes, router, shelfseeker_error_handler
from api.websocket import ConnectionManager
from config import API_HOST, API_PORT, APP_NAME, DEFAULT_TEMP_DIR, LOG_LEVEL
from errors import ShelfSeekerError
from settings.store import SettingsStore
from transfer.manager import TransferManager

# --- Logging ---
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Service singletons ---
settings_store = SettingsStore()
transfer_manager = TransferManager(
    settings_store.irc_config(),
    download_dir=settings_store.download_path(),
    temp_dir=DEFAULT_TEMP_DIR,
)
ws_manager = ConnectionManager(status_provider=transfer_manager.status)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop background services."""
    logger.info(f"Starting {APP_NAME} services...")

    try:
        transfer_manager.on_event(ws_manager.handle_event)
        await transfer_manager.start()

        logger.info(
            f"{APP_NAME} ready, API: {API_HOST}:{API_PORT}, "
            f"downloads: {transfer_manager.save_dir}"
        )

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    finally:
        logger.info(f"Shutting down {APP_NAME} services...")
        await transfer_manager.stop()


# --- FastAPI app ---
app = FastAPI(
    title=APP_NAME,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173", "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Inject services into routes
init_routes(transfer_manager, settings_store)
app.include_router(router)
app.add_exception_handler(ShelfSeekerError, shelfseeker_error_handler)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await ws_manager.connect(websocket)
    try:
        while True:
            # Keep the connection alive; we don't expect client messages
            await websocket.receive_text()
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
    )
