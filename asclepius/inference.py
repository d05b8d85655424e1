from __future__ import annotations

import asyncio
import io
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Tuple

import numpy as np
import structlog
import torch
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, InferenceTimeout, PredictionError
from .model import Model
from .schemas import Verdict

log = structlog.get_logger()

SUGGESTIONS = {
    Verdict.CANCER: "Segera periksa ke dokter!",
    Verdict.NON_CANCER: "Anda sehat!",
}


class ClassificationPipeline:
    """
    Turns raw image bytes into a verdict.

    decode -> resize -> batch -> infer -> decide. Tensors stay channels-last
    with pixel values in [0, 255]; the hosted model expects exactly
    (1, image_size, image_size, 3).
    """

    def __init__(self, model: Model, image_size: int = 224, threshold: float = 0.5,
                 max_pixels: int | None = None):
        self.model = model
        self.image_size = image_size
        self.threshold = threshold
        self.max_pixels = max_pixels

    def decode(self, img_bytes: bytes) -> torch.Tensor:
        try:
            img = Image.open(io.BytesIO(img_bytes))
            width, height = img.size
            if self.max_pixels is not None and width * height > self.max_pixels:
                log.info("image_too_large", width=width, height=height, limit=self.max_pixels)
                raise DecodeError()
            img = img.convert("RGB")
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise DecodeError() from exc
        return torch.from_numpy(np.asarray(img, dtype=np.float32))

    @staticmethod
    def _resize_axis(tensor: torch.Tensor, dim: int, out: int) -> torch.Tensor:
        # legacy resizeBilinear sampling: src = dst * in / out, no half-pixel offset
        size = tensor.shape[dim]
        src = torch.arange(out, dtype=torch.float64) * (size / out)
        lo = src.floor().long().clamp(max=size - 1)
        hi = (lo + 1).clamp(max=size - 1)
        shape = [1] * tensor.dim()
        shape[dim] = out
        frac = (src - lo.double()).to(tensor.dtype).view(shape)
        a = tensor.index_select(dim, lo)
        b = tensor.index_select(dim, hi)
        return a + (b - a) * frac

    def resize(self, tensor: torch.Tensor) -> torch.Tensor:
        out = self._resize_axis(tensor, 0, self.image_size)
        return self._resize_axis(out, 1, self.image_size).contiguous()

    def batch(self, tensor: torch.Tensor) -> torch.Tensor:
        return tensor.unsqueeze(0)

    def infer(self, tensor: torch.Tensor) -> float:
        output = self.model.infer(tensor)
        probability = float(output[0][0])
        if not math.isfinite(probability) or not 0.0 <= probability <= 1.0:
            raise PredictionError()
        return probability

    def decide(self, probability: float) -> Tuple[Verdict, str]:
        verdict = Verdict.CANCER if probability > self.threshold else Verdict.NON_CANCER
        return verdict, SUGGESTIONS[verdict]

    def preprocess(self, img_bytes: bytes) -> torch.Tensor:
        return self.batch(self.resize(self.decode(img_bytes)))

    def run(self, img_bytes: bytes) -> Tuple[Verdict, str, float]:
        try:
            tensor = self.preprocess(img_bytes)
            probability = self.infer(tensor)
        except PredictionError:
            raise
        except Exception as exc:
            raise PredictionError() from exc
        verdict, suggestion = self.decide(probability)
        return verdict, suggestion, probability


class Classifier:
    """Runs the pipeline off the event loop with a bounded wait."""

    def __init__(self, pipeline: ClassificationPipeline, max_workers: int = 4,
                 timeout: float | None = None):
        self.pipeline = pipeline
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers)

    async def classify(self, img_bytes: bytes) -> Tuple[Verdict, str]:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._pool, self.pipeline.run, img_bytes)
        try:
            verdict, suggestion, probability = await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            log.error("inference_timeout", timeout=self.timeout)
            raise InferenceTimeout()
        log.info("inference_complete", result=verdict.value, probability=round(probability, 4))
        return verdict, suggestion

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
