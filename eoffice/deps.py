# eoffice/deps.py
"""FastAPI dependencies. Everything hangs off app.state, set up in main.create_app."""
from fastapi import Request

from eoffice.core.workflow import ApprovalService
from eoffice.settings import Settings


def get_storage(request: Request):
    return request.app.state.storage


def get_service(request: Request) -> ApprovalService:
    return request.app.state.service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
