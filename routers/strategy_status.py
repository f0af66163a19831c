"""
Strategy Status Router - read-only view of the running flip controller.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Strategy"], prefix="/strategy")


def get_controller(request: Request):
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Strategy controller not attached")
    return controller


@router.get("/status")
async def get_status(controller=Depends(get_controller)):
    """
    Current configuration merged with the controller's position state.
    """
    return controller.get_status()


@router.get("/price-explanation")
async def get_price_explanation(controller=Depends(get_controller)):
    """
    Human readable explanation of the pool price and the held token.
    """
    try:
        return {"explanation": await controller.price_explanation()}
    except Exception as exc:
        logger.error(f"Error building price explanation: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error building price explanation: {exc}")


def create_app(controller: Optional[object] = None) -> FastAPI:
    app = FastAPI(title="DLMM Flip Strategy")
    app.state.controller = controller
    app.include_router(router)
    return app
