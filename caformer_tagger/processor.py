"""
Inference pipeline for the CAFormer Tagger.

One request runs preprocess -> engine -> ranking. Any failing stage aborts the
request and its error propagates to the caller; no partial result is returned.
"""

import asyncio
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence
import httpx
import numpy as np
from .config import settings
from .logging import get_logger, MetricsLogger
from .metadata import TagSource, load_tag_metadata
from .models import CategoryPolicy, InferenceResult, TagRecord
from .output_map import ConfigSource, load_output_map
from .performance_monitor import performance_monitor
from .preprocessing import ImageSource, preprocess_source
from .ranking import build_category_policies, get_tags_from_probs
from .tagging_engine import BaseInferenceEngine, create_inference_engine, predict

logger = get_logger("processor")


def describe_source(source) -> str:
    """Get a short human-readable name for an image source."""
    if isinstance(source, (str, Path)):
        return Path(source).name
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return str(getattr(source, "name", "<stream>"))


def default_policies() -> Dict[int, CategoryPolicy]:
    return build_category_policies(settings.general_limit, settings.character_limit)


def _preprocess(source: ImageSource) -> np.ndarray:
    with performance_monitor.time_stage("preprocess"):
        return preprocess_source(source, settings.pad_size, settings.image_size)


def _predict(engine: BaseInferenceEngine, tensor: np.ndarray, expected_length: int) -> np.ndarray:
    with performance_monitor.time_stage("inference"):
        return predict(engine, tensor, expected_length)


def _postprocess(
    probs: np.ndarray,
    output_map: Sequence[str],
    tag_metadata: Mapping[str, TagRecord],
    policies: Mapping[int, CategoryPolicy],
) -> InferenceResult:
    with performance_monitor.time_stage("postprocess"):
        return get_tags_from_probs(probs, output_map, tag_metadata, policies)


def _as_engine(model, providers: Optional[List[str]] = None) -> BaseInferenceEngine:
    if isinstance(model, BaseInferenceEngine):
        return model
    return create_inference_engine(model, providers)


class CaformerTagger:
    """Tags images with a loaded model, vocabulary and output map.

    The model, ``selected_tags.csv`` and ``config.json`` are loaded once and
    reused for every image. Each of them may be given as a path or as a stream;
    ``model`` may also be raw bytes or a ready ``BaseInferenceEngine``.
    """

    def __init__(
        self,
        model,
        tags: TagSource,
        config: ConfigSource,
        providers: Optional[List[str]] = None,
    ):
        self.logger = get_logger("processor")
        self.metrics = MetricsLogger()
        self.tag_metadata = load_tag_metadata(tags)
        self.output_map = load_output_map(config)
        self.policies = default_policies()
        self._owns_engine = not isinstance(model, BaseInferenceEngine)
        self.engine = _as_engine(model, providers)

        self.logger.info(
            f"🏷️  Tagger ready: {len(self.output_map)} outputs, {len(self.tag_metadata)} known tags"
        )

    def _finish(self, source_name: str, result: InferenceResult, start_time: float) -> InferenceResult:
        processing_time = time.time() - start_time
        self.metrics.log_request_completed(source_name, len(result.all_tags()), processing_time)
        performance_monitor.record_request_processed(processing_time)
        return result

    def _fail(self, source_name: str, error: Exception):
        self.metrics.log_request_failure(source_name, str(error))
        performance_monitor.record_request_failed()

    def tag_image(self, source: ImageSource, name: Optional[str] = None) -> InferenceResult:
        """Tag one image given as bytes, a binary stream or a file path."""
        source_name = name or describe_source(source)
        start_time = time.time()
        try:
            tensor = _preprocess(source)
            probs = _predict(self.engine, tensor, len(self.output_map))
            result = _postprocess(probs, self.output_map, self.tag_metadata, self.policies)
        except Exception as e:
            self._fail(source_name, e)
            raise
        return self._finish(source_name, result, start_time)

    async def tag_image_async(self, source: ImageSource, name: Optional[str] = None) -> InferenceResult:
        """Tag one image with preprocessing and inference on worker threads."""
        source_name = name or describe_source(source)
        start_time = time.time()
        try:
            tensor = await asyncio.to_thread(_preprocess, source)
            probs = await asyncio.to_thread(_predict, self.engine, tensor, len(self.output_map))
            result = _postprocess(probs, self.output_map, self.tag_metadata, self.policies)
        except asyncio.CancelledError:
            self.logger.debug(f"Tagging cancelled: {source_name}")
            raise
        except Exception as e:
            self._fail(source_name, e)
            raise
        return self._finish(source_name, result, start_time)

    def get_metrics(self):
        """Get current processing metrics."""
        return {
            "basic_metrics": self.metrics.get_metrics(),
            "performance_metrics": performance_monitor.get_metrics_dict(),
        }

    def close(self):
        """Clean up resources."""
        if self._owns_engine:
            self.engine.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def run_inference(
    model,
    image: ImageSource,
    tags: TagSource,
    config: ConfigSource,
    providers: Optional[List[str]] = None,
) -> InferenceResult:
    """Tag a single image; every input may be a path or a stream."""
    with CaformerTagger(model, tags, config, providers) as tagger:
        return tagger.tag_image(image)


async def run_inference_async(
    model,
    image: ImageSource,
    tags: TagSource,
    config: ConfigSource,
    providers: Optional[List[str]] = None,
) -> InferenceResult:
    """Tag a single image off the event loop.

    Preprocessing and the vocabulary/output-map loads run concurrently on
    worker threads; the engine runs once all of them have finished.
    """
    source_name = describe_source(image)
    start_time = time.time()
    engine = None
    try:
        tensor, tag_metadata, output_map = await asyncio.gather(
            asyncio.to_thread(_preprocess, image),
            asyncio.to_thread(load_tag_metadata, tags),
            asyncio.to_thread(load_output_map, config),
        )
        engine = await asyncio.to_thread(_as_engine, model, providers)
        probs = await asyncio.to_thread(_predict, engine, tensor, len(output_map))
        result = _postprocess(probs, output_map, tag_metadata, default_policies())
    except asyncio.CancelledError:
        logger.debug(f"Tagging cancelled: {source_name}")
        raise
    except Exception as e:
        logger.warning(f"Tagging failed: {source_name} | Error: {e}")
        performance_monitor.record_request_failed()
        raise
    finally:
        if engine is not None and engine is not model:
            engine.close()

    performance_monitor.record_request_processed(time.time() - start_time)
    return result


def fetch_image(url: str, timeout: Optional[float] = None) -> Optional[bytes]:
    """Download image bytes. Failures are logged and yield ``None``."""
    try:
        response = httpx.get(url, timeout=timeout or settings.request_timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"⚠️  An error occurred while downloading image '{url}': {e}")
        return None
    return response.content
