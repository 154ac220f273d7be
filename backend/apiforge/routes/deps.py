"""FastAPI dependencies shared by the route modules."""

from fastapi import Request

from apiforge.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container
