"""FastAPI server exposing closet, outfit and marketplace endpoints."""

from __future__ import annotations

import base64
import binascii
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import AsyncIterator, Callable, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from closet_app.app import StyleSphereApp
from closet_app.logging_config import configure_logging

ERROR_STATUS = {
    "InvalidInputError": 400,
    "AuthorizationError": 403,
    "ItemNotFoundError": 404,
    "ServiceUnavailableError": 503,
    "RemoteServiceError": 503,
    "PartialUploadError": 503,
}


class ClosetUploadBody(BaseModel):
    """Closet upload with the image sent as base64 text."""

    category: str = Field(..., description="Tops, Bottoms or Footwear")
    filename: str = "upload.jpg"
    content_type: str = "image/jpeg"
    data_base64: str = Field(..., description="Base64-encoded image bytes")


def _raise_for_error(response: dict) -> dict:
    if response.get("status") == "error":
        status_code = ERROR_STATUS.get(response.get("error", ""), 400)
        raise HTTPException(status_code=status_code, detail=response.get("message", "request failed"))
    return response


def _stylesphere(request: Request) -> StyleSphereApp:
    return request.app.state.stylesphere


def create_app(factory: Callable[[], StyleSphereApp] | None = None) -> FastAPI:
    """Build the ASGI app; ``factory`` supplies the StyleSphereApp started in the lifespan."""

    @asynccontextmanager
    async def lifespan(api: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        stylesphere = factory() if factory else StyleSphereApp()
        await stylesphere.start()
        api.state.stylesphere = stylesphere
        try:
            yield
        finally:
            await stylesphere.shutdown()

    api = FastAPI(title="StyleSphere", version="0.1.0", lifespan=lifespan)

    @api.get("/healthz")
    async def healthcheck(request: Request) -> dict:
        """Readiness check reporting the app mode."""

        stylesphere = _stylesphere(request)
        return {
            "status": "ok",
            "service": "stylesphere",
            "environment": stylesphere.config.environment or "local",
            "mode": "local" if stylesphere.is_local_mode else "remote",
        }

    @api.get("/closet")
    async def list_closet(request: Request, category: Optional[str] = None) -> dict:
        try:
            items = _stylesphere(request).my_closet(category)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"items": [asdict(item) for item in items]}

    @api.post("/closet")
    async def upload_closet_item(request: Request, body: ClosetUploadBody) -> dict:
        try:
            data = base64.b64decode(body.data_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(status_code=400, detail="Image data is not valid base64") from exc
        response = await _stylesphere(request).upload_closet_item(
            body.category,
            {"filename": body.filename, "content_type": body.content_type, "data": data},
        )
        return _raise_for_error(response)

    @api.delete("/closet/{item_id}")
    async def delete_closet_item(request: Request, item_id: str) -> dict:
        return _raise_for_error(await _stylesphere(request).delete_closet_item(item_id))

    @api.get("/outfits/current")
    async def current_outfit(request: Request) -> dict:
        stylesphere = _stylesphere(request)
        return {"index": stylesphere.view.carousel.selected_index, "outfit": stylesphere.current_outfit()}

    @api.post("/outfits/next")
    async def next_outfit(request: Request) -> dict:
        return _stylesphere(request).next_outfit()

    @api.post("/outfits/previous")
    async def previous_outfit(request: Request) -> dict:
        return _stylesphere(request).previous_outfit()

    @api.post("/outfits/shuffle")
    async def shuffle_outfits(request: Request) -> dict:
        return _raise_for_error(_stylesphere(request).shuffle_outfits())

    @api.get("/marketplace")
    async def browse_marketplace(
        request: Request,
        category: Optional[List[str]] = Query(None),
        availability: Optional[List[str]] = Query(None),
        gender: Optional[List[str]] = Query(None),
        search: Optional[str] = None,
    ) -> dict:
        try:
            listings = _stylesphere(request).browse_marketplace(category, availability, gender, search)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"listings": [asdict(listing) for listing in listings]}

    return api


app = create_app()


def get_app() -> FastAPI:
    """Expose the FastAPI instance for ASGI servers."""

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server.api:app", host="0.0.0.0", port=int(os.getenv("PORT", "8080")), reload=False)
