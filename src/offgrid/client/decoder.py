"""Response decoders: raw bytes to typed values.

:class:`JSONDecoder` validates JSON with a pydantic
:class:`~pydantic.TypeAdapter`, so the target may be a model, a builtin
type, or any typing construct pydantic understands (``list[User]``,
``dict[str, int]``, ...).  ``Any`` skips validation and returns whatever
the JSON parses to.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError

from offgrid.client import netlog
from offgrid.exceptions import DecodingError


class Decoder(ABC):
    """Abstract base class for response decoders."""

    @abstractmethod
    def decode(self, raw: bytes, target: Any = Any) -> Any:
        """Decode *raw* into an instance of *target*.

        Raises:
            DecodingError: If *raw* does not match *target*.
        """
        ...


class JSONDecoder(Decoder):
    """Decode JSON payloads, validating them against *target*.

    An empty body decodes to ``None`` when *target* is ``Any``.

    Example::

        user = JSONDecoder().decode(b'{"id": 1, "name": "ada"}', User)
    """

    def decode(self, raw: bytes, target: Any = Any) -> Any:
        try:
            if target is Any and not raw:
                return None
            return _adapter(target).validate_json(raw)
        except (ValidationError, ValueError) as exc:
            netlog.log_decoding_error(exc, target, raw)
            raise DecodingError(
                f"Could not decode response as {_type_name(target)}: {_summary(exc)}",
                raw=raw,
            ) from exc


def _adapter(target: Any) -> TypeAdapter[Any]:
    try:
        return _cached_adapter(target)
    except TypeError:
        # unhashable annotations (e.g. Annotated with dict metadata)
        return TypeAdapter(target)


@lru_cache(maxsize=128)
def _cached_adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def _type_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)


def _summary(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        count = exc.error_count()
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
        more = f" (+{count - 1} more)" if count > 1 else ""
        return f"{first.get('msg', 'invalid value')} at {location}{more}"
    return str(exc)
