from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from starlette.datastructures import UploadFile

import config
from errors import ValidationError
from session_store import SessionState
from storage import ImageUpload

templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))


FLASH_SUCCESS = "success"
FLASH_ERROR = "error"

REFRESH_EVENT = "donations-refresh"


def flash(kind: str, text: str) -> dict:
    return {"kind": kind, "text": text}


def wants_json(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("application/json")


async def read_payload(request: Request) -> Dict[str, Any]:
    """
    Accepts either JSON (API/Swagger) or form-data (from HTML form).
    Form strings are stripped; uploaded files are kept as-is.
    """
    if wants_json(request):
        try:
            data = await request.json()
        except ValueError as exc:
            raise ValidationError("Malformed JSON body") from exc
        return data if isinstance(data, dict) else {}

    form = await request.form()
    payload: Dict[str, Any] = {}
    for key, value in form.items():
        payload[key] = value.strip() if isinstance(value, str) else value
    return payload


async def read_image(value: Any) -> Optional[ImageUpload]:
    """Turn an optional `image` form field into an ImageUpload."""
    if not isinstance(value, UploadFile) or not value.filename:
        return None
    data = await value.read()
    return ImageUpload(
        filename=value.filename,
        content_type=value.content_type or "",
        data=data,
    )


def render(
    request: Request,
    name: str,
    state: Optional[SessionState] = None,
    status_code: int = status.HTTP_200_OK,
    **context: Any,
) -> HTMLResponse:
    base = {
        "current_user": state.identity if state else None,
        "current_role": state.role.value if state and state.role else None,
        "current_profile": state.profile if state else None,
    }
    base.update(context)
    return templates.TemplateResponse(request, name, base, status_code=status_code)
