# routers/pages.py
from fastapi import APIRouter, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from access import LOGIN_URL, dashboard_redirect, is_admin
from db import SessionDep
from models import Role
from session_store import SessionStateDep

from .common import render

router = APIRouter(tags=["pages"])


@router.get("/", response_class=HTMLResponse)
def landing_page(request: Request, current: SessionStateDep):
    return render(request, "index.html", current)


@router.get("/about", response_class=HTMLResponse)
def about_page(request: Request, current: SessionStateDep):
    return render(request, "about.html", current)


@router.get("/donor", response_class=HTMLResponse)
def donor_dashboard(request: Request, current: SessionStateDep):
    """Donor dashboard page"""
    target = dashboard_redirect(current, Role.donor)
    if target:
        return RedirectResponse(url=target, status_code=303)

    return render(request, "donor_dashboard.html", current)


@router.get("/volunteer", response_class=HTMLResponse)
def volunteer_dashboard(request: Request, current: SessionStateDep):
    """Volunteer dashboard page"""
    target = dashboard_redirect(current, Role.volunteer)
    if target:
        return RedirectResponse(url=target, status_code=303)

    return render(request, "volunteer_dashboard.html", current)


@router.get("/admin", response_class=HTMLResponse)
def admin_dashboard(request: Request, session: SessionDep, current: SessionStateDep):
    """
    Admin dashboard. The admin flag is read fresh on every load; anyone
    without it gets an explanation instead of a redirect.
    """
    if not is_admin(session, current):
        return render(
            request,
            "admin_denied.html",
            current,
            status_code=status.HTTP_403_FORBIDDEN,
        )

    return render(request, "admin_dashboard.html", current)


@router.get("/profile", response_class=HTMLResponse)
def profile_page(request: Request, current: SessionStateDep):
    if not current.is_authenticated:
        return RedirectResponse(url=LOGIN_URL, status_code=303)

    username = current.profile.username if current.profile else ""
    return render(
        request,
        "profile.html",
        current,
        form_data={"username": username},
        errors=[],
        flash_message=None,
    )
