"""FastAPI dependencies shared by the routers."""

from fastapi import Request


def get_services(request: Request):
    """The service graph built by ``app.create_app``."""
    return request.app.state.services
