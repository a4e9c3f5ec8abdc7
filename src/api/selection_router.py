from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from src.api.dependencies import get_engine
from src.sync.engine import ReconciliationEngine
from src.sync.errors import NoActiveItemError, UnknownItemError
from src.sync.export import EXPORT_FILENAME, render_export

router = APIRouter()


class CheckRequest(BaseModel):
    checked: bool


class ToggleSubitemRequest(BaseModel):
    ref: str


class SelectSubitemsRequest(BaseModel):
    selected: List[Optional[str]] = Field(default_factory=list)


class ResubscribeRequest(BaseModel):
    reseed: bool = False


def _selection_payload(engine: ReconciliationEngine) -> Dict[str, Any]:
    payload = engine.snapshot().to_dict()
    payload.update(
        {
            "seeded": engine.seeded,
            "live": engine.live,
            "active_item": engine.active_item,
            "pending": engine.unacknowledged(),
        }
    )
    return payload


@router.get("/catalog")
async def get_catalog(engine: ReconciliationEngine = Depends(get_engine)):
    items = [
        {"item_id": item.item_id, "subitems": list(item.subitems), "data": item.data}
        for item in engine.catalog.values()
    ]
    return {"count": len(items), "items": items}


@router.get("/selection")
async def get_selection(engine: ReconciliationEngine = Depends(get_engine)):
    return _selection_payload(engine)


@router.post("/items/{item_id}/check")
async def check_item(item_id: str, body: CheckRequest, engine: ReconciliationEngine = Depends(get_engine)):
    try:
        await engine.check_item(item_id, body.checked)
    except UnknownItemError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _selection_payload(engine)


@router.post("/items/{item_id}/open")
async def open_item(item_id: str, engine: ReconciliationEngine = Depends(get_engine)):
    try:
        view = await engine.open_item(item_id)
    except UnknownItemError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"active": view.to_dict()}


@router.get("/active")
async def get_active(engine: ReconciliationEngine = Depends(get_engine)):
    view = engine.active_view()
    return {"active": view.to_dict() if view else None}


@router.post("/active/close")
async def close_active(engine: ReconciliationEngine = Depends(get_engine)):
    await engine.close_item()
    return _selection_payload(engine)


@router.post("/active/subitems/toggle")
async def toggle_subitem(body: ToggleSubitemRequest, engine: ReconciliationEngine = Depends(get_engine)):
    try:
        view = await engine.toggle_subitem(body.ref)
    except NoActiveItemError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnknownItemError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"active": view.to_dict()}


@router.put("/active/subitems")
async def select_subitems(body: SelectSubitemsRequest, engine: ReconciliationEngine = Depends(get_engine)):
    try:
        view = await engine.select_subitems(body.selected)
    except NoActiveItemError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnknownItemError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"active": view.to_dict()}


@router.post("/subscription/resubscribe")
async def resubscribe(body: ResubscribeRequest, engine: ReconciliationEngine = Depends(get_engine)):
    live = await engine.resubscribe(reseed=body.reseed)
    return {"live": live}


@router.get("/errors")
async def get_errors(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    engine: ReconciliationEngine = Depends(get_engine),
):
    return {"errors": [e.to_dict() for e in engine.reporter.recent(limit)]}


@router.get("/export")
async def export_selection(request: Request, engine: ReconciliationEngine = Depends(get_engine)):
    config = getattr(request.app.state, "config", None)
    filename = config.export.filename if config is not None else EXPORT_FILENAME
    return Response(
        content=render_export(engine.export()).encode("utf-8"),
        media_type="application/json; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
