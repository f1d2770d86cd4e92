from fastapi.responses import JSONResponse


def error_response(error, status=400, details=None):
    content = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(
        status_code=status,
        content=content,
    )


def validation_error_response(errors):
    """Render pydantic/FastAPI validation errors as {error, details: [{path, message}]}"""
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append({
            "path": ".".join(loc),
            "message": err.get("msg", "Invalid value"),
        })
    return error_response("Validation error", status=400, details=details)
