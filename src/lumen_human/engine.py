"""
Tensor Engine for Lumen Human.

This module provides the numeric resource layer shared by the orchestrator and
the capability models:

- ``Tensor``: a disposable handle around a NumPy array
- ``TensorArena``: a per-call safety net that reclaims tensors left undisposed
- ``TensorEngine``: live-tensor accounting, engine flags and the registry of
  named compute backends, each mapped onto an ONNX Runtime execution provider

Tensors are owned explicitly. Whoever creates a tensor disposes it, and the
engine counts every tensor that has been created but not yet disposed. The
arena bound to the current context (see ``TensorEngine.scope``) collects every
tensor created while it is open, so concurrent ``detect`` calls never reclaim
each other's tensors.
"""

from __future__ import annotations

import asyncio
import contextvars
import itertools
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt
import onnxruntime as ort

from .exceptions import BackendNotFoundError, TensorDisposedError

logger = logging.getLogger(__name__)

CPU_PROVIDER = "CPUExecutionProvider"

# ONNX Runtime logger severity: 0=verbose, 1=info, 2=warning, 3=error, 4=fatal
_ORT_SEVERITY_PROD = 3


@dataclass(frozen=True)
class BackendSpec:
    """A named compute backend.

    Attributes:
        name: Backend name as used in configuration (e.g. "cpu", "cuda").
        provider: ONNX Runtime execution provider backing this backend.
        gpu: Whether the backend holds device buffers that the deallocation
            threshold applies to.
        direct_pixels: Whether surface pixels can be wrapped into a tensor
            directly, without an intermediate read-back copy.
    """

    name: str
    provider: str
    gpu: bool = False
    direct_pixels: bool = False


# Ordered by preference; the first available one is picked when no backend
# has been set explicitly.
BUILTIN_BACKENDS: tuple[BackendSpec, ...] = (
    BackendSpec("cuda", "CUDAExecutionProvider", gpu=True, direct_pixels=True),
    BackendSpec("tensorrt", "TensorrtExecutionProvider", gpu=True, direct_pixels=True),
    BackendSpec("coreml", "CoreMLExecutionProvider", gpu=True, direct_pixels=True),
    BackendSpec("directml", "DmlExecutionProvider", gpu=True, direct_pixels=True),
    BackendSpec("openvino", "OpenVINOExecutionProvider"),
    BackendSpec("cpu", CPU_PROVIDER),
)

DEFAULT_FLAGS: dict[str, Any] = {
    "PROD": False,
    "DELETE_THRESHOLD": -1,
    "CPU_FORWARD": False,
    "IS_HEADLESS": False,
}


class Tensor:
    """Disposable handle around a NumPy array tracked by a ``TensorEngine``."""

    __slots__ = ("_data", "_engine", "id")

    def __init__(self, data: npt.NDArray[Any], engine: TensorEngine, tensor_id: int):
        self._data: npt.NDArray[Any] | None = data
        self._engine = engine
        self.id = tensor_id

    @property
    def engine(self) -> TensorEngine:
        return self._engine

    @property
    def data(self) -> npt.NDArray[Any]:
        if self._data is None:
            raise TensorDisposedError(f"Tensor {self.id} is disposed")
        return self._data

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self.data.shape)

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def is_disposed(self) -> bool:
        return self._data is None

    def dispose(self) -> None:
        """Release the underlying array. Disposing twice is a no-op."""
        if self._data is None:
            return
        self._data = None
        self._engine._release(self)

    def clone(self) -> Tensor:
        return self._engine.tensor(self.data.copy())

    def to_float(self) -> Tensor:
        return self._engine.tensor(self.data.astype(np.float32))

    def expand_dims(self, axis: int = 0) -> Tensor:
        return self._engine.tensor(np.expand_dims(self.data, axis))

    def numpy(self) -> npt.NDArray[Any]:
        """Copy the data out as a plain array that outlives the tensor."""
        return self.data.copy()

    def __repr__(self) -> str:
        if self._data is None:
            return f"Tensor(id={self.id}, disposed)"
        return f"Tensor(id={self.id}, shape={self._data.shape}, dtype={self._data.dtype})"


class TensorArena:
    """Collects tensors created while it is bound and disposes leftovers on close."""

    def __init__(self) -> None:
        self._tensors: list[Tensor] = []
        self.closed = False

    def track(self, tensor: Tensor) -> None:
        self._tensors.append(tensor)

    def keep(self, tensor: Tensor) -> Tensor:
        """Exempt a tensor from reclamation so it survives the arena."""
        self._tensors = [t for t in self._tensors if t is not tensor]
        return tensor

    def close(self) -> int:
        reclaimed = 0
        for tensor in self._tensors:
            if not tensor.is_disposed:
                tensor.dispose()
                reclaimed += 1
        self._tensors.clear()
        self.closed = True
        return reclaimed


_current_arena: contextvars.ContextVar[TensorArena | None] = contextvars.ContextVar(
    "lumen_human_arena", default=None
)


class TensorEngine:
    """Live-tensor accounting plus backend registry and engine flags.

    One engine is held by each ``RuntimeContext``; switching its backend
    affects every call that shares the context.
    """

    def __init__(
        self,
        backends: Iterable[BackendSpec] | None = None,
        provider_probe: Callable[[], list[str]] | None = None,
    ) -> None:
        self._backends: dict[str, BackendSpec] = {
            spec.name: spec for spec in (backends or BUILTIN_BACKENDS)
        }
        self._provider_probe = provider_probe or ort.get_available_providers
        self._active: BackendSpec | None = None
        self.flags: dict[str, Any] = dict(DEFAULT_FLAGS)

        self._ids = itertools.count()
        self._live: dict[int, int] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Tensor accounting
    # ------------------------------------------------------------------ #

    def tensor(self, data: npt.ArrayLike) -> Tensor:
        """Wrap an array into a tracked tensor owned by the caller."""
        array = np.asarray(data)
        with self._lock:
            tensor_id = next(self._ids)
            self._live[tensor_id] = array.nbytes
        tensor = Tensor(array, self, tensor_id)
        arena = _current_arena.get()
        if arena is not None and not arena.closed:
            arena.track(tensor)
        return tensor

    def _release(self, tensor: Tensor) -> None:
        with self._lock:
            self._live.pop(tensor.id, None)

    @property
    def num_tensors(self) -> int:
        with self._lock:
            return len(self._live)

    def memory(self) -> dict[str, int]:
        with self._lock:
            return {"num_tensors": len(self._live), "num_bytes": sum(self._live.values())}

    @contextmanager
    def scope(self) -> Iterator[TensorArena]:
        """Bind a fresh arena to the current context for the duration of the block."""
        arena = TensorArena()
        token = _current_arena.set(arena)
        try:
            yield arena
        finally:
            _current_arena.reset(token)
            reclaimed = arena.close()
            if reclaimed:
                logger.debug("Arena reclaimed %d undisposed tensors", reclaimed)

    # ------------------------------------------------------------------ #
    # Backends
    # ------------------------------------------------------------------ #

    def register_backend(self, spec: BackendSpec) -> None:
        self._backends[spec.name] = spec

    def backend_names(self) -> list[str]:
        return list(self._backends)

    def find_backend(self, name: str) -> BackendSpec:
        spec = self._backends.get(name.lower())
        if spec is None:
            raise BackendNotFoundError(
                f"Backend '{name}' is not registered. Registered backends: {self.backend_names()}"
            )
        return spec

    def is_available(self, spec: BackendSpec) -> bool:
        return spec.provider in self._provider_probe()

    @property
    def backend(self) -> BackendSpec | None:
        """The active backend, or None when no backend has been set yet."""
        return self._active

    def get_backend(self) -> str:
        """Name of the active backend, initializing the preferred one if unset."""
        if self._active is None:
            available = set(self._provider_probe())
            for spec in self._backends.values():
                if spec.provider in available:
                    self._active = spec
                    logger.debug("Initialized default backend: %s", spec.name)
                    break
            else:
                raise BackendNotFoundError("No registered backend is available")
        return self._active.name

    async def set_backend(self, name: str) -> None:
        spec = self.find_backend(name)
        if not self.is_available(spec):
            raise BackendNotFoundError(
                f"Backend '{name}' requires {spec.provider}, which is not available. "
                f"Available providers: {self._provider_probe()}"
            )
        self._active = spec
        await asyncio.sleep(0)

    async def ready(self) -> bool:
        """Wait until the active backend can serve sessions."""
        await asyncio.sleep(0)
        return self._active is not None and self.is_available(self._active)

    def enable_prod_mode(self) -> None:
        self.flags["PROD"] = True
        ort.set_default_logger_severity(_ORT_SEVERITY_PROD)

    def session_providers(self, extra: Iterable[str] = ()) -> list[str | tuple[str, dict[str, str]]]:
        """Execution-provider chain for ``onnxruntime.InferenceSession``.

        The active backend's provider comes first, followed by any extra
        providers and, when ``CPU_FORWARD`` is set, the CPU provider as a
        fallback for operators the accelerator does not implement.
        """
        self.get_backend()
        spec = self._active
        assert spec is not None

        options: dict[str, str] = {}
        if spec.provider == "CUDAExecutionProvider" and self.flags["DELETE_THRESHOLD"] == 0:
            options["arena_extend_strategy"] = "kSameAsRequested"

        chain: list[str | tuple[str, dict[str, str]]] = [
            (spec.provider, options) if options else spec.provider
        ]
        names = [spec.provider]
        for provider in extra:
            if provider not in names:
                chain.append(provider)
                names.append(provider)
        if self.flags["CPU_FORWARD"] and CPU_PROVIDER not in names:
            chain.append(CPU_PROVIDER)
        return chain


__all__ = [
    "BackendSpec",
    "BUILTIN_BACKENDS",
    "CPU_PROVIDER",
    "Tensor",
    "TensorArena",
    "TensorEngine",
]
