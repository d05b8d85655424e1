import io
import threading
import time
from typing import Callable, List

import pytest
import torch
from fastapi.testclient import TestClient
from PIL import Image

from asclepius.config import Settings
from asclepius.main import create_app
from asclepius.model import ModelSlot
from asclepius.store import MemoryStore


def make_image(size=(64, 48), color=(200, 30, 30), fmt="PNG", mode="RGB") -> bytes:
    if mode == "L":
        color = color[0]
    elif mode == "RGBA":
        color = tuple(color) + (255,)
    img = Image.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class FakeModel:
    """Returns a fixed probability and remembers the tensors it saw."""

    def __init__(self, probability: float = 0.2, delay: float = 0.0):
        self.probability = probability
        self.delay = delay
        self.inputs: List[torch.Tensor] = []
        self._lock = threading.Lock()

    @property
    def calls(self) -> int:
        return len(self.inputs)

    def infer(self, tensor: torch.Tensor) -> torch.Tensor:
        with self._lock:
            self.inputs.append(tensor)
        if self.delay:
            time.sleep(self.delay)
        return torch.tensor([[self.probability]], dtype=torch.float32)


class FailingStore(MemoryStore):
    name = "failing"

    async def put(self, collection, doc_id, record):
        raise RuntimeError("write refused")

    async def get_all(self, collection):
        raise RuntimeError("read refused")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        model_url="file:///models/asclepius.pt",
        store_backend="memory",
        inference_timeout=5.0,
        store_timeout=5.0,
        _env_file=None,
    )


@pytest.fixture
def model() -> FakeModel:
    return FakeModel(0.2)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def client_factory(settings) -> Callable[..., TestClient]:
    """Build a started TestClient around a preloaded (or absent) model."""
    clients = []

    def _build(model=None, store=None, loader=None, app_settings=None):
        kwargs = {}
        if loader is not None:
            kwargs["model_loader"] = loader
        app = create_app(
            app_settings or settings,
            store=store,
            slot=ModelSlot(model) if model is not None else None,
            **kwargs,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _build

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(client_factory, model, store) -> TestClient:
    return client_factory(model=model, store=store)
