# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Error classification for model rotation.

Turns provider error payloads of any shape (plain strings, decoded JSON
bodies, exceptions from HTTP clients) into a ParsedError the rotation engine
can act on. Classification never raises; anything unrecognized comes back as
a non-triggering ``other`` error.
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .constants import (
    MAX_NESTING_DEPTH,
    NOT_FOUND_MESSAGE_MARKERS,
    NOT_FOUND_NAME_MARKERS,
    NOT_FOUND_TYPE_MARKERS,
    ORIGIN_FIELD_RULES,
    ORIGIN_NAME_HINTS,
    QUOTA_CODE_MARKERS,
    QUOTA_MESSAGE_MARKERS,
    QUOTA_STATUS_CODES,
    QUOTA_TYPE_MARKERS,
    RESOURCE_EXHAUSTED_STATUS,
    ROTATION_CODE_MARKERS,
    ROTATION_ERROR_KEYWORDS,
    ROTATION_STATUS_CODES,
    ROTATION_TYPE_MARKERS,
)
from .types import ErrorKind, Origin, ParsedError

lib_logger = logging.getLogger("model_rotation")

OriginRule = Tuple[str, str, str, str]


# =============================================================================
# PAYLOAD DECODING
# =============================================================================


def _as_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


def _str_field(payload: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    if payload is None:
        return None
    value = payload.get(name)
    return value if isinstance(value, str) else None


def _lower_field(payload: Optional[Mapping[str, Any]], name: str) -> str:
    if payload is None:
        return ""
    value = payload.get(name)
    return "" if value is None else str(value).lower()


def _stringify(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _decode_exception(exc: BaseException) -> Dict[str, Any]:
    """
    Decode an exception into an error payload.

    HTTP client exceptions carry the status as ``status_code`` (litellm),
    ``status`` or ``response.status_code`` (httpx), and the decoded error
    body as ``body``.
    """
    payload: Dict[str, Any] = {"name": type(exc).__name__}

    for status in (
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
        getattr(getattr(exc, "response", None), "status_code", None),
    ):
        if isinstance(status, int) and not isinstance(status, bool):
            payload["status"] = status
            break

    body = _as_mapping(getattr(exc, "body", None))
    if body is not None:
        payload["error"] = _as_mapping(body.get("error")) or body

    message = getattr(exc, "message", None)
    if not isinstance(message, str):
        text = str(exc)
        message = f"{payload['name']}: {text}" if text else payload["name"]
    payload["message"] = message

    model = getattr(exc, "model", None)
    if isinstance(model, str):
        payload["model"] = model

    return payload


def _decode(value: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        return value
    if isinstance(value, BaseException):
        return _decode_exception(value)
    return None


def _status_code(payload: Mapping[str, Any]) -> Optional[int]:
    for key in ("status", "status_code", "statusCode"):
        value = payload.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


# =============================================================================
# MESSAGE EXTRACTION
# =============================================================================


def _direct_message(payload: Mapping[str, Any]) -> Optional[str]:
    return _str_field(payload, "message")


def _nested_message(payload: Mapping[str, Any]) -> Optional[str]:
    return _str_field(_as_mapping(payload.get("error")), "message")


def _double_nested_message(payload: Mapping[str, Any]) -> Optional[str]:
    nested = _as_mapping(payload.get("error"))
    data = _as_mapping(nested.get("data")) if nested else None
    deepest = _as_mapping(data.get("error")) if data else None
    return _str_field(deepest, "message")


def _direct_details(payload: Mapping[str, Any]) -> Optional[str]:
    return _str_field(payload, "details")


def _nested_details(payload: Mapping[str, Any]) -> Optional[str]:
    return _str_field(_as_mapping(payload.get("error")), "details")


MESSAGE_STRATEGIES: Tuple[Callable[[Mapping[str, Any]], Optional[str]], ...] = (
    _direct_message,
    _nested_message,
    _double_nested_message,
    _direct_details,
    _nested_details,
)


def extract_message(payload: Mapping[str, Any]) -> Tuple[str, bool]:
    """
    Pull the most specific message out of an error payload.

    Returns:
        (message, found) where found is False when no strategy matched and
        the message is the stringified payload.
    """
    for strategy in MESSAGE_STRATEGIES:
        message = strategy(payload)
        if message is not None:
            return message, True
    return _stringify(payload), False


# =============================================================================
# CLASSIFIER
# =============================================================================


class ErrorClassifier:
    """
    Classifies provider errors into rotation decisions.

    The keyword vocabulary and origin heuristics are constructor arguments so
    callers can extend them for providers with other conventions.
    """

    def __init__(
        self,
        keywords: Iterable[str] = ROTATION_ERROR_KEYWORDS,
        origin_name_hints: Optional[Mapping[str, Sequence[str]]] = None,
        origin_field_rules: Iterable[OriginRule] = ORIGIN_FIELD_RULES,
        max_depth: int = MAX_NESTING_DEPTH,
    ):
        self._keywords = tuple(k.lower() for k in keywords)
        hints = ORIGIN_NAME_HINTS if origin_name_hints is None else origin_name_hints
        self._origin_name_hints = [
            (Origin(origin), tuple(f.lower() for f in fragments))
            for origin, fragments in hints.items()
        ]
        self._origin_field_rules = [
            (Origin(origin), field, match, value.lower())
            for origin, field, match, value in origin_field_rules
        ]
        self._max_depth = max(1, max_depth)

    def classify(self, value: Any) -> ParsedError:
        """Classify an arbitrary error value. Never raises."""
        try:
            return self._classify(value)
        except Exception as e:
            lib_logger.warning(f"Failed to classify error payload: {e}")
            try:
                message = str(value)
            except Exception:
                message = f"<unprintable {type(value).__name__}>"
            return self._default(message)

    # -------------------------------------------------------------------------
    # Classification steps
    # -------------------------------------------------------------------------

    def _classify(self, value: Any) -> ParsedError:
        if isinstance(value, str):
            return self._classify_text(value)

        payload = _decode(value)
        if payload is None:
            return self._default("" if value is None else str(value))

        origin = self._origin_from_text(_lower_field(payload, "model"))

        status = _status_code(payload)
        if status in ROTATION_STATUS_CODES:
            return self._classify_status(payload, status, origin)

        nested = _as_mapping(payload.get("error"))
        if nested is not None:
            result = self._classify_nested(nested, origin, depth=1)
            if result.triggers_rotation:
                return result

        message, _ = extract_message(payload)
        if self._has_keyword(message):
            return ParsedError(
                triggers_rotation=True,
                kind=self._kind_for(message, payload),
                origin=origin,
                message=message,
            )

        return ParsedError(
            triggers_rotation=False,
            kind=ErrorKind.OTHER,
            origin=origin,
            message=message,
        )

    def _classify_status(
        self, payload: Mapping[str, Any], status: int, origin: Origin
    ) -> ParsedError:
        message, _ = extract_message(payload)
        nested = _as_mapping(payload.get("error"))

        exhausted = (
            _lower_field(nested, "status") == RESOURCE_EXHAUSTED_STATUS
            or "exhausted" in message.lower()
            or "insufficient" in _lower_field(nested, "code")
            or "insufficient" in _lower_field(nested, "message")
        )
        kind = ErrorKind.QUOTA if status in QUOTA_STATUS_CODES or exhausted else ErrorKind.RATE_LIMIT

        if origin is Origin.UNKNOWN:
            origin = self._origin_from_fields(nested)

        return ParsedError(triggers_rotation=True, kind=kind, origin=origin, message=message)

    def _classify_nested(
        self, nested: Mapping[str, Any], parent_origin: Origin, depth: int
    ) -> ParsedError:
        error_type = _lower_field(nested, "type")
        error_code = _lower_field(nested, "code")
        error_status = _lower_field(nested, "status")
        message, found = extract_message(nested)

        origin = parent_origin
        if origin is Origin.UNKNOWN:
            origin = self._origin_from_fields(nested)

        signalled = (
            any(marker in error_type for marker in ROTATION_TYPE_MARKERS)
            or any(marker in error_code for marker in ROTATION_CODE_MARKERS)
            or error_status == RESOURCE_EXHAUSTED_STATUS
            or (found and self._has_keyword(message))
        )
        if signalled:
            return ParsedError(
                triggers_rotation=True,
                kind=self._kind_for(message, nested),
                origin=origin,
                message=message,
            )

        # Double-wrapped payloads: error.data.error
        if depth < self._max_depth:
            data = _as_mapping(nested.get("data"))
            deeper = _as_mapping(data.get("error")) if data else None
            if deeper is not None:
                result = self._classify_nested(deeper, origin, depth + 1)
                if result.triggers_rotation:
                    return result

        return self._default(message)

    def _classify_text(self, text: str) -> ParsedError:
        if not self._has_keyword(text):
            return self._default(text)

        lowered = text.lower()
        if any(marker in lowered for marker in NOT_FOUND_MESSAGE_MARKERS):
            kind = ErrorKind.RESOURCE_NOT_FOUND
        elif any(marker in lowered for marker in QUOTA_MESSAGE_MARKERS):
            kind = ErrorKind.QUOTA
        else:
            kind = ErrorKind.RATE_LIMIT

        return ParsedError(
            triggers_rotation=True,
            kind=kind,
            origin=self._origin_from_text(lowered),
            message=text,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _has_keyword(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self._keywords)

    def _kind_for(self, message: str, fields: Mapping[str, Any]) -> ErrorKind:
        lowered = message.lower()
        error_type = _lower_field(fields, "type")
        error_code = _lower_field(fields, "code")
        error_status = _lower_field(fields, "status")
        error_name = _lower_field(fields, "name")

        if (
            any(marker in lowered for marker in NOT_FOUND_MESSAGE_MARKERS)
            or any(marker in error_name for marker in NOT_FOUND_NAME_MARKERS)
            or any(marker in error_type for marker in NOT_FOUND_TYPE_MARKERS)
        ):
            return ErrorKind.RESOURCE_NOT_FOUND

        if (
            any(marker in lowered for marker in QUOTA_MESSAGE_MARKERS)
            or any(marker in error_type for marker in QUOTA_TYPE_MARKERS)
            or any(marker in error_code for marker in QUOTA_CODE_MARKERS)
            or error_status == RESOURCE_EXHAUSTED_STATUS
        ):
            return ErrorKind.QUOTA

        return ErrorKind.RATE_LIMIT

    def _origin_from_text(self, lowered: str) -> Origin:
        if not lowered:
            return Origin.UNKNOWN
        for origin, fragments in self._origin_name_hints:
            if any(fragment in lowered for fragment in fragments):
                return origin
        return Origin.UNKNOWN

    def _origin_from_fields(self, nested: Optional[Mapping[str, Any]]) -> Origin:
        if nested is None:
            return Origin.UNKNOWN
        for origin, field, match, expected in self._origin_field_rules:
            actual = _lower_field(nested, field)
            if not actual:
                continue
            if match == "equals" and actual == expected:
                return origin
            if match == "contains" and expected in actual:
                return origin
        return Origin.UNKNOWN

    @staticmethod
    def _default(message: str) -> ParsedError:
        return ParsedError(
            triggers_rotation=False,
            kind=ErrorKind.OTHER,
            origin=Origin.UNKNOWN,
            message=message,
        )


_default_classifier = ErrorClassifier()


def classify(value: Any) -> ParsedError:
    """Classify an error value with the default vocabulary."""
    return _default_classifier.classify(value)
