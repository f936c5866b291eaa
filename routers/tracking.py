import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from errors import TrackingError
from routers.schemas import ClickRequest, ConversionRequest
from services.tracking_service import TrackingService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_tracking_service(request: Request) -> TrackingService:
    return request.app.state.tracking


@router.post("/click")
async def track_click(payload: ClickRequest, tracking: TrackingService = Depends(get_tracking_service)):
    try:
        click_id = await tracking.record_click(payload)
        return {"success": True, "clickId": str(click_id)}
    except TrackingError as e:
        return JSONResponse(e.to_dict(), status_code=e.status_code)
    except Exception as e:
        logger.exception("Error tracking click for %s", payload.ref_code)
        return JSONResponse({"error": "Error tracking click", "details": str(e)}, status_code=500)


@router.post("/conversion")
async def track_conversion(payload: ConversionRequest, tracking: TrackingService = Depends(get_tracking_service)):
    try:
        conversion_id = await tracking.record_conversion(payload)
        return {"success": True, "conversionId": str(conversion_id)}
    except TrackingError as e:
        return JSONResponse(e.to_dict(), status_code=e.status_code)
    except Exception as e:
        logger.exception("Error tracking conversion for %s", payload.affiliate_code)
        return JSONResponse({"error": "Error tracking conversion", "details": str(e)}, status_code=500)
