from typing import List, Dict
from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from logger import logger


INTERNAL_ERROR_MESSAGE = "An internal server error occurred. Please try again later."


# format the validation errors into our desired output
def format_validation_errors(errors: List[dict]) -> Dict:
    formatted_errors = {}

    for error in errors:
        # Extract the field name and error message
        field = error["loc"][-1] if len(error["loc"]) > 1 else "Unknown"
        message = error["msg"]

        # Add to the formatted_errors dictionary
        if field in formatted_errors:
            formatted_errors[field].append(message)
        else:
            formatted_errors[field] = [message]

    # Construct the final response format
    return {
        "data": {"fields": formatted_errors},
        "message": "Validation error occurred.",
        "status": False,
        "error_code": "VALIDATION_ERROR",
    }


async def handle_validation_error(request: Request, exc) -> JSONResponse:
    # request bodies may carry PINs and OTP codes, only field names are logged
    logger.warning(
        msg=f"422 on {request.url.path}: "
        + ", ".join(str(error["loc"][-1]) for error in exc.errors())
    )
    return JSONResponse(status_code=422, content=format_validation_errors(exc.errors()))


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return await handle_validation_error(request, exc)


# Custom internal server error handler
async def custom_http_exception_handler(
    request: Request, exc: HTTPException
) -> JSONResponse:
    if exc.status_code == 500:
        logger.error(f"Internal server error: {exc.detail}")
        return JSONResponse(
            status_code=500,
            content={"status": False, "message": INTERNAL_ERROR_MESSAGE, "data": {}},
        )

    if isinstance(exc.detail, dict):
        content = {"status": False, "data": {}, **exc.detail}
    else:
        content = {"status": False, "message": exc.detail, "data": {}}

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )
