from __future__ import annotations

import asyncio
import io
from typing import Awaitable, Callable, Optional, Protocol

import structlog
import torch

from .artifact_io import fetch_artifact

log = structlog.get_logger()

DEVICE = "cpu"


class Model(Protocol):
    def infer(self, tensor: torch.Tensor) -> torch.Tensor: ...


class GraphModel:
    """
    Frozen TorchScript graph used for inference only.
    Input is a (1, H, W, 3) float tensor, output a (1, 1) probability.
    """

    def __init__(self, module: torch.jit.ScriptModule):
        self.module = module
        self.module.eval()

    @classmethod
    def from_bytes(cls, data: bytes) -> "GraphModel":
        module = torch.jit.load(io.BytesIO(data), map_location=DEVICE)
        return cls(module)

    @torch.inference_mode()
    def infer(self, tensor: torch.Tensor) -> torch.Tensor:
        return self.module(tensor.to(DEVICE))


async def load_model(url: str) -> GraphModel:
    data = await fetch_artifact(url)
    log.info("model_fetched", url=url, bytes=len(data))
    return await asyncio.to_thread(GraphModel.from_bytes, data)


ModelLoader = Callable[[str], Awaitable[Model]]


class ModelSlot:
    """
    Holds the process-wide model once it has been loaded.

    Created empty at startup and filled exactly once; readers check ``ready``
    and never wait for the load to finish.
    """

    def __init__(self, model: Optional[Model] = None):
        self._model = model
        self.error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self._model is not None

    def get(self) -> Model:
        if self._model is None:
            raise RuntimeError("Model not loaded")
        return self._model

    async def load(self, url: str, loader: ModelLoader = load_model,
                   timeout: Optional[float] = None) -> None:
        if self._model is not None:
            raise RuntimeError("Model already loaded")
        log.info("model_loading", url=url)
        try:
            model = await asyncio.wait_for(loader(url), timeout)
        except asyncio.TimeoutError:
            self.error = f"model load timed out after {timeout}s"
            log.error("model_load_failed", url=url, err=self.error)
            return
        except Exception as exc:
            self.error = str(exc) or type(exc).__name__
            log.error("model_load_failed", url=url, err=self.error)
            return
        self._model = model
        self.error = None
        log.info("model_loaded", url=url)
