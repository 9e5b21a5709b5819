"""
Inference engine adapter for the CAFormer tagger model.
"""

from pathlib import Path
from typing import IO, Dict, List, Optional, Union
import numpy as np
from .config import settings
from .logging import get_logger

ModelSource = Union[bytes, bytearray, str, Path, IO[bytes]]


class EngineError(Exception):
    """Custom exception for inference engine errors."""
    pass


class BaseInferenceEngine:
    """Base class for inference engines: a tensor goes in, named outputs come out."""

    def __init__(self):
        self.logger = get_logger("tagging_engine")

    def run(self, tensor: np.ndarray) -> Dict[str, np.ndarray]:
        """Run the model on ``tensor``. Must be implemented by subclasses."""
        raise NotImplementedError

    def close(self):
        """Release engine resources."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class OnnxInferenceEngine(BaseInferenceEngine):
    """Runs an ONNX model with onnxruntime."""

    def __init__(
        self,
        model: ModelSource,
        providers: Optional[List[str]] = None,
        input_name: Optional[str] = None,
    ):
        super().__init__()
        self.providers = providers or settings.get_providers()
        self.requested_input_name = input_name or settings.input_name
        self.session = None
        self._load_model(model)

    def _load_model(self, model: ModelSource):
        """Create the onnxruntime session."""
        try:
            # Import here so the rest of the package works without onnxruntime
            import onnxruntime as ort
        except ImportError:
            raise EngineError("onnxruntime package not installed. Run: pip install onnxruntime")

        if isinstance(model, (bytes, bytearray)):
            model_data = bytes(model)
        elif isinstance(model, (str, Path)):
            model_data = str(model)
        else:
            model_data = model.read()

        try:
            self.session = ort.InferenceSession(model_data, providers=self.providers)
        except Exception as e:
            raise EngineError(f"Failed to load model: {e}")

        inputs = self.session.get_inputs()
        input_names = [node.name for node in inputs]
        if self.requested_input_name in input_names:
            self.input_name = self.requested_input_name
        elif len(inputs) == 1:
            self.input_name = input_names[0]
        else:
            raise EngineError(
                f"Model has no input named '{self.requested_input_name}' (inputs: {input_names})"
            )

        self.output_names = [node.name for node in self.session.get_outputs()]
        self.logger.info(
            f"🧠 Model loaded | input: {self.input_name} | outputs: {self.output_names} | "
            f"providers: {self.session.get_providers()}"
        )

    def run(self, tensor: np.ndarray) -> Dict[str, np.ndarray]:
        """Run the model and return every output keyed by name."""
        try:
            results = self.session.run(None, {self.input_name: tensor})
        except Exception as e:
            raise EngineError(f"Model inference failed: {e}")
        return dict(zip(self.output_names, results))

    def close(self):
        self.session = None


def extract_prediction(
    outputs: Dict[str, np.ndarray],
    expected_length: int,
    output_name: Optional[str] = None,
) -> np.ndarray:
    """Pick the prediction stream out of the engine outputs as a flat float32 vector.

    The vector must be exactly ``expected_length`` long; it is never truncated or padded.
    """
    output_name = output_name or settings.output_name
    if output_name not in outputs:
        raise EngineError(
            f"Model produced no '{output_name}' output (outputs: {sorted(outputs)})"
        )

    probs = np.asarray(outputs[output_name], dtype=np.float32).reshape(-1)
    if probs.shape[0] != expected_length:
        raise EngineError(
            f"Model output '{output_name}' has {probs.shape[0]} values "
            f"but the output map names {expected_length} tags"
        )
    return probs


def predict(engine: BaseInferenceEngine, tensor: np.ndarray, expected_length: int) -> np.ndarray:
    """Run ``engine`` on ``tensor`` and return the probability vector."""
    return extract_prediction(engine.run(tensor), expected_length)


def create_inference_engine(model: ModelSource, providers: Optional[List[str]] = None) -> BaseInferenceEngine:
    """Factory function to create the inference engine for a model artifact."""
    return OnnxInferenceEngine(model, providers=providers)
