"""REST API routes for ShelfSeeker."""

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from errors import (
    ConnectivityError,
    DownloadTimeout,
    NoListingFound,
    SearchTimeout,
    ShelfSeekerError,
    TransferBusy,
)
from listing.sorting import SortOption

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_transfer_manager = None
_settings_store = None


def init_routes(transfer_manager, settings_store) -> None:
    """Inject service dependencies into the routes module."""
    global _transfer_manager, _settings_store
    _transfer_manager = transfer_manager
    _settings_store = settings_store


# --- Error mapping ---

def error_status(error: ShelfSeekerError) -> int:
    """HTTP status code for a backend error."""
    if isinstance(error, TransferBusy):
        return 409
    if isinstance(error, (SearchTimeout, DownloadTimeout)):
        return 504
    if isinstance(error, NoListingFound):
        return 404
    if isinstance(error, ConnectivityError):
        return 503
    return 500


async def shelfseeker_error_handler(request: Request, exc: ShelfSeekerError) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"success": False, "error": str(exc)})


def _ok(data) -> dict:
    return {"success": True, "data": data}


# --- Connection ---

@router.post("/connect")
async def connect():
    if not _transfer_manager.current_config().enabled:
        raise HTTPException(status_code=400, detail="IRC is disabled. Please enable it in settings.")
    await _transfer_manager.connect()
    return _ok({"status": "connected"})


@router.post("/disconnect")
async def disconnect():
    await _transfer_manager.disconnect()
    return _ok({"status": "disconnected"})


@router.get("/status")
async def get_status():
    return _ok(_transfer_manager.status())


# --- Search & download ---

class SearchBody(BaseModel):
    query: str = Field(min_length=1)
    enrich: bool = False
    sort: SortOption = SortOption.RELEVANCE


class DownloadBody(BaseModel):
    command: str = Field(min_length=1)


@router.post("/search")
async def search(body: SearchBody):
    query = body.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Invalid query")
    if body.enrich and not _transfer_manager.can_enrich:
        raise HTTPException(status_code=400, detail="Metadata enrichment is not configured")
    entries = await _transfer_manager.search(query, enrich=body.enrich, sort=body.sort)
    return _ok([e.model_dump(mode="json") for e in entries])


@router.post("/download")
async def download(body: DownloadBody):
    command = body.command.strip()
    if not command.startswith("!"):
        raise HTTPException(status_code=400, detail="Invalid command for IRC download")
    filename = await _transfer_manager.download(command)
    return _ok({"filename": filename})


# --- Settings ---

class IrcConfigBody(BaseModel):
    enabled: bool | None = None
    server: str | None = None
    port: int | None = None
    channel: str | None = None
    nickname: str | None = None
    search_command: str | None = None
    use_tls: bool | None = None


class GeneralConfigBody(BaseModel):
    download_path: str = Field(min_length=1)


def _config_snapshot() -> dict:
    return {
        "irc": _settings_store.irc_config().model_dump(mode="json"),
        "general": {"download_path": str(_settings_store.download_path())},
    }


async def _apply_irc_config(config) -> dict:
    """Push saved settings into the running manager, reporting reconnect failures."""
    try:
        await _transfer_manager.update_config(config)
    except ShelfSeekerError as e:
        logger.error(f"Failed to reconnect with new config: {e}")
        return {"reconnected": False, "message": f"Configuration saved but failed to reconnect: {e}"}
    return {"reconnected": True, "message": "IRC configuration updated successfully"}


@router.get("/config")
async def get_config():
    return _ok(_config_snapshot())


@router.put("/config/irc")
async def update_irc_config(body: IrcConfigBody):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Invalid IRC configuration")
    try:
        config = _settings_store.update_irc_config(**changes)
    except ValidationError as e:
        raise HTTPException(
            status_code=400, detail=", ".join(err["msg"] for err in e.errors())
        )
    return _ok(await _apply_irc_config(config))


@router.put("/config/general")
async def update_general_config(body: GeneralConfigBody):
    path = Path(body.download_path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise HTTPException(status_code=400, detail=f"Invalid directory: {e}")
    _transfer_manager.save_dir = path
    _settings_store.update_download_path(path)
    return _ok({"message": "General configuration updated successfully"})


@router.post("/config/reset")
async def reset_config():
    _settings_store.reset()
    _transfer_manager.save_dir = _settings_store.download_path()
    result = await _apply_irc_config(_settings_store.irc_config())
    if result["reconnected"]:
        result["message"] = "Configuration reset to defaults"
    return _ok(result)
