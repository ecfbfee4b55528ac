from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from access import DASHBOARD_URLS, LOGIN_URL, auth_page_redirect
from db import SessionDep
from errors import FoodDropError
from identity import sign_in, sign_up
from schemas import LoginData, ProfileRead, RoleUpdate, SignUpData, parse_payload
from session_store import (
    CurrentSessionDep,
    SessionStateDep,
    set_role,
    set_session_cookie,
    sign_in_session,
    sign_out,
)

from .common import read_payload, render, wants_json

router = APIRouter(tags=["auth"])


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, current: SessionStateDep):
    target = auth_page_redirect(current)
    if target:
        return RedirectResponse(url=target, status_code=303)

    return render(request, "login.html", current)


@router.get("/signup", response_class=HTMLResponse)
def signup_page(request: Request, current: SessionStateDep):
    target = auth_page_redirect(current)
    if target:
        return RedirectResponse(url=target, status_code=303)

    return render(request, "signup.html", current)


@router.post("/signup")
async def signup(request: Request, session: SessionDep):
    """
    Create an account, pick a role and sign straight in.

    Accepts either JSON (API/Swagger) or form-data (from HTML form).
    """
    payload = await read_payload(request)

    try:
        data = parse_payload(SignUpData, payload)
        identity = sign_up(session, data.email, data.password, data.username)
        state, token = sign_in_session(session, identity, data.role)
    except FoodDropError as exc:
        if wants_json(request):
            raise
        return render(
            request,
            "signup.html",
            status_code=exc.status_code,
            error=exc.message,
            form_data={"email": payload.get("email", ""), "username": payload.get("username", "")},
        )

    if wants_json(request):
        resp = JSONResponse(
            {"message": "Registration successful", "id": identity.id, "role": state.role.value},
            status_code=201,
        )
    else:
        resp = RedirectResponse(url=DASHBOARD_URLS[state.role], status_code=303)

    set_session_cookie(resp, token)
    return resp


@router.post("/login")
async def login(request: Request, session: SessionDep):
    """
    Log in with email + password + chosen role ("donor" / "volunteer"),
    set a signed cookie.

    Accepts either JSON (API/Swagger) or form-data (from HTML form).
    """
    payload = await read_payload(request)

    try:
        data = parse_payload(LoginData, payload)
        identity = sign_in(session, data.email, data.password)
        state, token = sign_in_session(session, identity, data.role)
    except FoodDropError as exc:
        if wants_json(request):
            raise
        return render(
            request,
            "login.html",
            status_code=exc.status_code,
            error=exc.message,
            form_data={"email": payload.get("email", "")},
        )

    if wants_json(request):
        resp = JSONResponse({"message": "Login successful", "role": state.role.value})
    else:
        resp = RedirectResponse(url=DASHBOARD_URLS[state.role], status_code=303)

    set_session_cookie(resp, token)
    return resp


@router.post("/logout")
def logout():
    """
    Clear the session cookie and redirect to home.
    """
    response = RedirectResponse(url="/", status_code=303)
    sign_out(response)
    return response


@router.post("/role")
async def choose_role(request: Request, session: SessionDep, current: SessionStateDep):
    """
    Switch the active role. Anonymous visitors keep the choice in their
    cookie until they sign in.
    """
    data = parse_payload(RoleUpdate, await read_payload(request))
    state, token = set_role(session, current, data.role)

    if wants_json(request):
        resp = JSONResponse({"role": state.role.value, "authenticated": state.is_authenticated})
    elif state.is_authenticated:
        resp = RedirectResponse(url=DASHBOARD_URLS[state.role], status_code=303)
    else:
        resp = RedirectResponse(url=LOGIN_URL, status_code=303)

    set_session_cookie(resp, token)
    return resp


@router.get("/me")
def read_me(current: CurrentSessionDep):
    """
    Get info about the currently logged-in identity + active role.
    """
    identity = current.identity
    return {
        "id": identity.id,
        "email": identity.email,
        "role": current.role.value if current.role else None,
        "profile": ProfileRead.model_validate(current.profile).model_dump(mode="json"),
    }
