"""shared — Slim API wire-format models."""

from shared.envelope import (
    BAD_REQUEST,
    FORM_FORMATS,
    FORMAT_GET,
    FORMAT_JSON,
    FORMAT_POST,
    INTERNAL_ERROR,
    KNOWN_FORMATS,
    META_CALLBACK,
    META_FORMAT,
    META_METHOD,
    SUCCESS,
    ApiResponse,
)

__all__ = [
    "ApiResponse",
    "SUCCESS",
    "BAD_REQUEST",
    "INTERNAL_ERROR",
    "META_METHOD",
    "META_FORMAT",
    "META_CALLBACK",
    "FORMAT_JSON",
    "FORMAT_POST",
    "FORMAT_GET",
    "FORM_FORMATS",
    "KNOWN_FORMATS",
]
