import logging
from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from errors import TrackingError, Conflict
from middlewares.verify_token_routes import VerifyTokenRoute
from routers.schemas import RegisterRequest, LoginRequest
from services.affiliate_service import AffiliateService

logger = logging.getLogger(__name__)

router = APIRouter()

# Routes that need a bearer token
dashboard_router = APIRouter(route_class=VerifyTokenRoute)


def get_affiliate_service(request: Request) -> AffiliateService:
    return request.app.state.affiliates


@router.post("/register")
async def register_affiliate(payload: RegisterRequest, affiliates: AffiliateService = Depends(get_affiliate_service)):
    try:
        user_id = await affiliates.register(payload)
        return {"success": True, "userId": str(user_id)}
    except Conflict as e:
        return JSONResponse({"success": False, "error": e.message, "message": e.message}, status_code=e.status_code)
    except TrackingError as e:
        return JSONResponse({"success": False, **e.to_dict()}, status_code=e.status_code)
    except Exception as e:
        logger.exception("Error registering affiliate %s", payload.email)
        return JSONResponse(
            {"success": False, "error": "Error creating affiliate account", "details": str(e)},
            status_code=500,
        )


@router.post("/login")
async def login_affiliate(payload: LoginRequest, affiliates: AffiliateService = Depends(get_affiliate_service)):
    try:
        token = await affiliates.authenticate(payload.email, payload.password)
        return jsonable_encoder({"success": True, **token})
    except TrackingError as e:
        return JSONResponse(e.to_dict(), status_code=e.status_code)
    except Exception as e:
        logger.exception("Error logging in %s", payload.email)
        return JSONResponse({"error": "Error logging in", "details": str(e)}, status_code=500)


@dashboard_router.get("/dashboard")
async def get_dashboard(request: Request, affiliates: AffiliateService = Depends(get_affiliate_service)):
    try:
        data = await affiliates.dashboard(request.state.user_id)
        return JSONResponse(jsonable_encoder(data), status_code=200)
    except TrackingError as e:
        return JSONResponse(e.to_dict(), status_code=e.status_code)
    except Exception as e:
        logger.exception("Error getting dashboard data for %s", request.state.user_id)
        return JSONResponse({"error": "Error getting dashboard data", "details": str(e)}, status_code=500)
