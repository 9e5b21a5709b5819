"""
CAFormer Tagger

Predicts booru-style tags for an image with a CAFormer DBv4 ONNX model:
the image is padded, resized and normalized into a tensor, run through the
model, and the resulting probabilities are split into ranked general,
character and rating tag lists.
"""

__version__ = "1.0.0"
__author__ = "CAFormer Tagger Team"
