from rosetta_gateway.pipeline.buffered import BufferedNormalizer
from rosetta_gateway.pipeline.factory import NormalizerFactory
from rosetta_gateway.pipeline.stream import StreamNormalizer

__all__ = ["BufferedNormalizer", "NormalizerFactory", "StreamNormalizer"]
