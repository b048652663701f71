import uuid
import time
import logging
from typing import Optional, Any
from datetime import datetime
from collections.abc import Iterator, Mapping, MutableMapping
import orjson
import jsonpickle

logger = logging.getLogger("hybrid_session.data")

_DATETIME_KEY = "__session_datetime__"
_TUPLE_KEY = "__session_tuple__"


def _pack(value: Any) -> Any:
    """Wrap values JSON would not give back as-is (datetimes, tuples)."""
    if isinstance(value, datetime):
        return {_DATETIME_KEY: value.isoformat()}
    if isinstance(value, tuple):
        return {_TUPLE_KEY: [_pack(v) for v in value]}
    if isinstance(value, list):
        return [_pack(v) for v in value]
    if isinstance(value, dict):
        return {k: _pack(v) for k, v in value.items()}
    return value


def _unpack(value: Any) -> Any:
    if isinstance(value, list):
        return [_unpack(v) for v in value]
    if isinstance(value, dict):
        if len(value) == 1 and _DATETIME_KEY in value:
            return datetime.fromisoformat(value[_DATETIME_KEY])
        if len(value) == 1 and _TUPLE_KEY in value:
            return tuple(_unpack(v) for v in value[_TUPLE_KEY])
        return {k: _unpack(v) for k, v in value.items()}
    return value


def _persistable(value: Any) -> bool:
    if value is None or isinstance(value, (bool, int, float, str, datetime)):
        return True
    if isinstance(value, dict):
        return all(isinstance(k, str) and _persistable(v) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return all(_persistable(v) for v in value)
    return False


class SessionData(MutableMapping[str, Any]):
    """Session dict-like object handed to request handlers.

    Values that survive a trip through :meth:`to_payload` (JSON primitives,
    lists, tuples, str-keyed dicts and datetimes) are persisted.  Anything
    else lives only for the current request.
    """

    def __init__(
        self,
        id: Optional[str] = None,
        data: Optional[Mapping[str, Any]] = None,
        *,
        new: bool = False,
        created: Optional[int] = None
    ) -> None:
        self.session_id: str = id or uuid.uuid4().hex
        self.new: bool = new or data is None
        # new sessions are saved even if nothing is assigned
        self.is_changed: bool = bool(new)
        self.invalidated = False
        self.created: int = created or int(time.time())
        self._values: dict[str, Any] = dict(data or {})
        self._transient: set[str] = set()

    def __repr__(self) -> str:
        return (
            f'<HybridSession [id:{self.session_id[:8]}…, new:{self.new}] '
            f'keys={sorted(self._values)}>'
        )

    # --- Payload ---

    def to_payload(self) -> bytes:
        """Serialize persistent values to the bytes handed to the backends."""
        return orjson.dumps(
            {"created": self.created, "data": _pack(self.persistent())}
        )

    @classmethod
    def from_payload(cls, session_id: str, payload: bytes) -> "SessionData":
        """Rebuild a stored session; empty or corrupt payloads give a new session."""
        if not payload:
            return cls(session_id, new=True)
        try:
            stored = orjson.loads(payload)
            data = stored["data"]
            if not isinstance(data, dict):
                raise TypeError(f"session data is a {type(data).__name__}")
        except (orjson.JSONDecodeError, KeyError, TypeError) as err:
            logger.warning(
                "Discarding unreadable session payload for %s…: %s",
                session_id[:8], err
            )
            return cls(session_id, new=True)
        return cls(session_id, _unpack(data), created=stored.get("created"))

    def persistent(self) -> dict[str, Any]:
        return {
            k: v for k, v in self._values.items() if k not in self._transient
        }

    # --- State ---

    @property
    def empty(self) -> bool:
        return not self._values

    def changed(self) -> None:
        self.is_changed = True

    def invalidate(self) -> None:
        """Clear all session data; the stored session is destroyed after the request."""
        self._values.clear()
        self._transient.clear()
        self.is_changed = True
        self.invalidated = True

    # --- Mapping protocol ---

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if _persistable(value):
            self._transient.discard(key)
            self.is_changed = True
        else:
            if key in self._values and key not in self._transient:
                # a persisted value is being replaced by an in-memory one
                self.is_changed = True
            self._transient.add(key)
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]
        if key in self._transient:
            self._transient.discard(key)
        else:
            self.is_changed = True

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def encode(self, key: str, obj: Any) -> None:
        """encode

            Store an arbitrary object under ``key`` as a jsonpickle string,
            so it survives the trip through the session backends.
        Args:
            key (str): key name.
            obj (Any): Object to be encoded using jsonpickle

        Raises:
            RuntimeError: Error converting data to json.
        """
        try:
            self[key] = jsonpickle.encode(obj)
        except Exception as err:
            raise RuntimeError(err) from err

    def decode(self, key: str) -> Any:
        """decode.

            Decoding a Session Key stored with :meth:`encode`.
        Args:
            key (str): key name.

        Raises:
            RuntimeError: Error converting data from json.

        Returns:
            Any: object converted, None if the key is missing.
        """
        if key not in self._values:
            return None
        try:
            return jsonpickle.decode(self._values[key])
        except Exception as err:
            raise RuntimeError(err) from err
