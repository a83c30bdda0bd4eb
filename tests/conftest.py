from __future__ import annotations

import pytest

from fakes import FakeServer
from lmss.client import LmssClient
from lmss.config import ClientSettings


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
async def client(server: FakeServer):
    async with LmssClient(ClientSettings(), transport=server.transport()) as c:
        yield c
