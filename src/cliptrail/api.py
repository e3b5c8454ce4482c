import base64
import binascii
import io
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field

from cliptrail.services.history_service import HistoryService


class TextBody(BaseModel):
    text: str


class ImageBody(BaseModel):
    data: str  # base64 encoded image bytes
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)


class CapacityBody(BaseModel):
    capacity: int = Field(ge=1)


class MonitoringBody(BaseModel):
    enabled: bool


def create_app(service: HistoryService) -> FastAPI:
    app = FastAPI(title="ClipTrail")
    app.state.service = service

    @app.get("/")
    def root():
        return "running"

    @app.get("/history")
    def history():
        return service.get_snapshot().to_list()

    @app.get("/history/{entry_id}/text")
    def entry_text(entry_id: str):
        text = service.get_text(entry_id)
        if text is None:
            raise HTTPException(status_code=404, detail="entry not found")
        return {"id": entry_id, "text": text}

    @app.post("/history/text")
    def add_text(body: TextBody):
        item_id = service.insert_text(body.text, wait=True)
        return {"ok": item_id is not None, "itemId": item_id}

    @app.post("/history/image")
    def add_image(body: ImageBody):
        try:
            data = base64.b64decode(body.data, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=422, detail="data is not valid base64")

        width, height = body.width, body.height
        if width is None or height is None:
            try:
                with Image.open(io.BytesIO(data)) as image:
                    width, height = image.size
            except (UnidentifiedImageError, OSError):
                raise HTTPException(status_code=422, detail="data is not a readable image")

        item_id = service.insert_image(data, width, height, wait=True)
        return {"ok": item_id is not None, "itemId": item_id}

    @app.delete("/history/{entry_id}")
    def remove(entry_id: str):
        if not service.remove_by_id(entry_id):
            raise HTTPException(status_code=404, detail="entry not found")
        return {"ok": True}

    @app.delete("/history")
    def clear():
        service.clear()
        return {"ok": True}

    @app.post("/history/{entry_id}/copy")
    def copy(entry_id: str):
        if service.store.get(entry_id) is None:
            raise HTTPException(status_code=404, detail="entry not found")
        return {"ok": service.copy_to_clipboard(entry_id)}

    @app.put("/history/capacity")
    def capacity(body: CapacityBody):
        service.set_capacity(body.capacity)
        return {"ok": True, "capacity": service.store.capacity}

    @app.get("/memory")
    def memory():
        return service.get_memory_stats()

    @app.post("/memory/gc")
    def force_gc(aggressive: bool = False):
        return service.force_cleanup(aggressive=aggressive)

    @app.put("/memory/monitoring")
    def monitoring(body: MonitoringBody):
        return {"ok": True, "enabled": service.set_memory_monitoring(body.enabled)}

    @app.get("/settings")
    def get_settings():
        return service.get_settings().model_dump()

    @app.patch("/settings")
    async def update_settings(request: Request):
        payload = await request.json()
        if not isinstance(payload, dict):
            raise HTTPException(status_code=422, detail="expected an object")
        current = service.get_settings()
        updated = service.update_settings(**payload)
        if payload and updated is current:
            raise HTTPException(status_code=422, detail="invalid settings")
        return updated.model_dump()

    return app
