from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from errors import Unauthorized
from utils import validate_token


class VerifyTokenRoute(APIRoute):
    """Route class that requires ``Authorization: Bearer <token>``.

    The ``user_id`` claim ends up in ``request.state.user_id``.
    """

    def get_route_handler(self):
        original_route = super().get_route_handler()

        async def verify_token_middleware(request: Request):
            try:
                # Retrieve the Authorization header
                auth_header = request.headers.get("Authorization")
                if not auth_header:
                    raise Unauthorized("Unauthorized", "Authorization header missing")

                # Extract the token from the Authorization header
                parts = auth_header.split(" ")
                if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
                    raise Unauthorized("Unauthorized", "Invalid Authorization header format")

                payload = validate_token(parts[1], secret=request.app.state.token_secret)
                if not payload.get("user_id"):
                    raise Unauthorized("Unauthorized", "Token has no user_id claim")
            except Unauthorized as e:
                return JSONResponse(e.to_dict(), status_code=e.status_code)

            request.state.user_id = payload["user_id"]
            return await original_route(request)

        return verify_token_middleware
