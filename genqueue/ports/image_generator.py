"""Port definition for image generation backends."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from genqueue.domain.ai_pipeline import AIPipelineRequest, GenerationResult


@runtime_checkable
class ImageGeneratorPort(Protocol):
    """Provider client that runs a single generation on a chosen model."""

    def generate(
        self, *, model_id: str, prompt: str | None, request: AIPipelineRequest
    ) -> GenerationResult:
        """Run the model and describe the produced image."""


__all__ = ["ImageGeneratorPort"]
