from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import FileResponse, JSONResponse

from .archive import ArchiveFetcher
from .configuration import configure_logging, load_settings, whatsapp_configured
from .delivery import DeliveryClient, NullDeliveryClient, WhatsAppClient
from .fulfillment import InvalidPayloadError, OrderFulfiller
from .ledger import MoneyLedger
from .maintenance import ExpirySweeper, is_expired, purge_directory
from .models import WebhookPayload
from .pipeline import OrderPipeline, ProjectPipeline
from .storage import delete_file
from .utils import ensure_directory

settings = load_settings()
configure_logging(str(settings.logging.level))
logger = logging.getLogger(__name__)

temp_dir = ensure_directory(Path(str(settings.storage.temp_dir)))
file_expiry_days = float(settings.storage.file_expiry_days)


def _build_delivery_client() -> DeliveryClient:
    if not whatsapp_configured(settings):
        logger.warning("WhatsApp credentials not configured; documents will not be delivered")
        return NullDeliveryClient()
    return WhatsAppClient(
        access_token=str(settings.whatsapp.access_token),
        phone_number_id=str(settings.whatsapp.phone_number_id),
        recipient_number=str(settings.whatsapp.recipient_number),
        api_base_url=str(settings.whatsapp.api_base_url),
    )


ledger = MoneyLedger(Path(str(settings.ledger.path)))
project_pipeline = ProjectPipeline(
    fetcher=ArchiveFetcher(timeout=float(settings.pipeline.fetch_timeout_seconds)),
    temp_root=temp_dir,
    output_root=temp_dir,
)
fulfiller = OrderFulfiller(
    order_pipeline=OrderPipeline(project_pipeline, max_workers=int(settings.pipeline.max_workers)),
    ledger=ledger,
    delivery=_build_delivery_client(),
)
sweeper = ExpirySweeper(
    temp_dir,
    expiry_days=file_expiry_days,
    interval_seconds=float(settings.storage.sweep_interval_hours) * 3600,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info(f"Webhook endpoint: {settings.server.webhook_path}")
    sweeper.start()
    try:
        yield
    finally:
        sweeper.stop()


app = FastAPI(title="Print Render Backend", version="0.1.0", lifespan=lifespan)


def get_fulfiller() -> OrderFulfiller:
    return fulfiller


def get_ledger() -> MoneyLedger:
    return ledger


def get_temp_dir() -> Path:
    return temp_dir


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.post(str(settings.server.webhook_path))
def receive_webhook(payload: WebhookPayload, manager: OrderFulfiller = Depends(get_fulfiller)) -> JSONResponse:
    logger.info("Received webhook request")
    try:
        response, status_code = manager.process(payload)
    except InvalidPayloadError as exc:
        logger.warning(f"Rejected webhook: {exc}")
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json", by_alias=True))


@app.get("/download/{filename}")
def download(filename: str, directory: Path = Depends(get_temp_dir)) -> FileResponse:
    if not filename.endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Invalid file type")
    if Path(filename).name != filename or filename.startswith("."):
        raise HTTPException(status_code=400, detail="Invalid path request")

    file_path = directory / filename
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    if is_expired(file_path, file_expiry_days):
        logger.info(f"Deleting expired file: {filename}")
        delete_file(file_path)
        raise HTTPException(status_code=410, detail="File has expired")

    logger.info(f"Served download: {filename}")
    return FileResponse(
        file_path,
        media_type="application/pdf",
        filename=filename,
        content_disposition_type="inline",
        headers={"Cache-Control": "no-cache"},
    )


@app.post("/cleanup")
def cleanup(directory: Path = Depends(get_temp_dir)) -> Dict[str, Any]:
    report = purge_directory(directory)
    deleted = report.files.deleted + report.directories.deleted
    errors = report.files.errors + report.directories.errors
    logger.info(f"Cleanup completed: {deleted} files/directories deleted, {errors} errors")
    return {
        "success": True,
        "message": f"Cleanup completed: {deleted} items deleted",
        "results": {
            "files": {"deleted": report.files.deleted, "errors": report.files.errors},
            "directories": {"deleted": report.directories.deleted, "errors": report.directories.errors},
            "total": {"deleted": deleted, "errors": errors},
        },
    }


@app.get("/reset-money")
def reset_money(store: MoneyLedger = Depends(get_ledger)) -> Dict[str, Any]:
    try:
        store.reset()
    except OSError as exc:
        logger.error(f"Error resetting ledger: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error during money reset") from exc
    return {"success": True, "message": "Money total reset"}
