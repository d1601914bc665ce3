"""Pixel providers: where source keys turn into RGBA pixels."""

from .provider import DecodeFailure, FetchDenied, PixelBuffer, PixelProvider, decode_image_bytes
from .files import FilePixelProvider
from .http import HttpPixelProvider

__all__ = [
    "DecodeFailure",
    "FetchDenied",
    "PixelBuffer",
    "PixelProvider",
    "decode_image_bytes",
    "FilePixelProvider",
    "HttpPixelProvider",
]
