"""ONNX face detector models: where they come from and how their sessions are built.

UltraFace weights are small enough to fetch on first start. A file already
present in ``models_dir`` is used as-is, which lets offline deployments ship
the weights alongside the service.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from roastmyface.config import Settings

logger = logging.getLogger(__name__)

Provider = str | tuple[str, dict[str, object]]


@dataclass(frozen=True)
class DetectorModel:
    """Where a detector's weights live and the input size it expects."""

    name: str
    repo_id: str
    filename: str
    input_size: tuple[int, int]
    license: str = "MIT"


DETECTOR_MODELS: dict[str, DetectorModel] = {
    model.name: model
    for model in (
        DetectorModel("ultraface_rfb_320", "onnxmodelzoo/version-RFB-320", "version-RFB-320.onnx", (320, 240)),
        DetectorModel("ultraface_slim_320", "onnxmodelzoo/version-slim-320", "version-slim-320.onnx", (320, 240)),
    )
}


def lookup_model(model_name: str) -> DetectorModel:
    model = DETECTOR_MODELS.get(model_name)
    if model is None:
        known = ", ".join(sorted(DETECTOR_MODELS))
        raise KeyError(f"Unknown model: {model_name} (known: {known})")
    return model


def execution_providers(settings: Settings) -> list[Provider]:
    """Providers in preference order; CPU is always the last resort."""
    if settings.device == "cuda":
        cuda_options: dict[str, object] = {
            "device_id": 0,
            "gpu_mem_limit": settings.gpu_mem_limit,
            "arena_extend_strategy": "kSameAsRequested",
        }
        return [("CUDAExecutionProvider", cuda_options), "CPUExecutionProvider"]
    if settings.device == "openvino":
        return [("OpenVINOExecutionProvider", {"device_type": "CPU"}), "CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


def session_options(settings: Settings) -> SessionOptions:
    options = SessionOptions()
    options.intra_op_num_threads = settings.intra_op_threads
    options.inter_op_num_threads = settings.inter_op_threads
    options.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    return options


class OnnxModelManager:
    """Resolves detector weights on disk and keeps one InferenceSession per model."""

    def __init__(self, settings: Settings) -> None:
        self._models_dir = Path(settings.models_dir)
        self._providers = execution_providers(settings)
        self._options = session_options(settings)
        self._sessions: dict[str, InferenceSession] = {}
        self._lock = threading.Lock()

    @property
    def loaded_models(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def resolve_model_path(self, model_name: str) -> Path:
        """Return the local weights file, downloading it from the Hub when missing."""
        model = lookup_model(model_name)
        local = self._models_dir / model.filename
        if local.is_file():
            return local

        self._models_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Fetching %s from %s", model.filename, model.repo_id)
        fetched = hf_hub_download(repo_id=model.repo_id, filename=model.filename, local_dir=str(self._models_dir))
        return Path(fetched)

    def get_session(self, model_name: str) -> InferenceSession:
        """Return the model's session, building it on first use.

        Building holds the lock so concurrent first calls load the weights once.
        """
        with self._lock:
            session = self._sessions.get(model_name)
            if session is None:
                path = self.resolve_model_path(model_name)
                session = InferenceSession(str(path), sess_options=self._options, providers=self._providers)
                self._sessions[model_name] = session
                logger.info("Created %s session from %s", model_name, path)
            return session

    def close(self) -> None:
        with self._lock:
            released = len(self._sessions)
            self._sessions.clear()
        logger.info("Released %d detector session(s)", released)
