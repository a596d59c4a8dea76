# backend/advisory_radar/api/v1/deps.py
from fastapi import Request

from advisory_radar.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
