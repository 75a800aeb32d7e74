"""Codecs converting local secret files to and from key-value mappings.

Each codec exposes ``decode(bytes) -> SecretValue`` and
``encode(SecretValue) -> bytes``. Codecs are looked up by tag (``dotenv``,
``json``) when the manifest is loaded, so sync code never deals with format
names.
"""
import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from .errors import CodecError, DuplicateKeyError, MalformedLineError

logger = logging.getLogger(__name__)

# Ordered mapping of secret keys to values (dicts keep insertion order)
SecretValue = Dict[str, str]

KEY_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_UNESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", '"': '"', "'": "'"}
_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


class SecretCodec(Protocol):
    name: str

    def decode(self, data: bytes) -> SecretValue:
        ...

    def encode(self, value: SecretValue) -> bytes:
        ...


def _unescape(text: str) -> str:
    chars: List[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text) and text[i + 1] in _UNESCAPES:
            chars.append(_UNESCAPES[text[i + 1]])
            i += 2
            continue
        chars.append(char)
        i += 1
    return "".join(chars)


def _needs_quotes(value: str) -> bool:
    return any(char.isspace() or char in "=\"'" for char in value)


class DotenvCodec:
    """Line-based ``KEY=VALUE`` files such as ``.env``."""

    name = "dotenv"

    def decode(self, data: bytes) -> SecretValue:
        """
        Parse dotenv bytes into an ordered mapping.

        Args:
            data: Raw file content

        Returns:
            Mapping of keys to values in file order

        Raises:
            MalformedLineError: If a line is not blank, a comment or KEY=VALUE
            DuplicateKeyError: If a key is declared twice
            CodecError: If the content is not valid UTF-8
        """
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CodecError(f"file is not valid UTF-8: {e}")

        value: SecretValue = {}
        for number, raw_line in enumerate(text.split("\n"), start=1):
            line = raw_line.rstrip("\r").strip()
            if not line or line.startswith("#"):
                continue

            key, parsed = self._parse_line(line, number)
            if key in value:
                raise DuplicateKeyError(key, number)
            value[key] = parsed

        return value

    def _parse_line(self, line: str, number: int) -> Tuple[str, str]:
        if line.startswith("export ") and "=" in line[len("export "):]:
            line = line[len("export "):].lstrip()

        if "=" not in line:
            raise MalformedLineError("expected KEY=VALUE", number)

        key, raw_value = line.split("=", 1)
        key = key.strip()
        if not KEY_PATTERN.fullmatch(key):
            raise MalformedLineError(f"invalid key '{key}'", number)

        raw_value = raw_value.strip()
        if raw_value[:1] in ("\"", "'"):
            return key, _unescape(self._quoted_body(raw_value, key, number))

        return key, raw_value

    def _quoted_body(self, raw_value: str, key: str, number: int) -> str:
        quote = raw_value[0]
        i = 1
        while i < len(raw_value):
            char = raw_value[i]
            if char == "\\":
                i += 2
                continue
            if char == quote:
                if raw_value[i + 1:].strip():
                    raise MalformedLineError(f"unexpected text after quoted value for '{key}'", number)
                return raw_value[1:i]
            i += 1
        raise MalformedLineError(f"unterminated quoted value for '{key}'", number)

    def encode(self, value: SecretValue) -> bytes:
        lines = []
        for key, item in value.items():
            if not KEY_PATTERN.fullmatch(key):
                raise CodecError(f"cannot write key '{key}' to a dotenv file")
            if _needs_quotes(item):
                escaped = "".join(_ESCAPES.get(char, char) for char in item)
                item = f'"{escaped}"'
            lines.append(f"{key}={item}")

        if not lines:
            return b""
        return ("\n".join(lines) + "\n").encode("utf-8")


class JsonCodec:
    """Flat JSON objects of string values."""

    name = "json"

    def decode(self, data: bytes) -> SecretValue:
        def no_duplicates(pairs):
            result: SecretValue = {}
            for key, item in pairs:
                if key in result:
                    raise DuplicateKeyError(key)
                result[key] = item
            return result

        try:
            document = json.loads(data.decode("utf-8"), object_pairs_hook=no_duplicates)
        except UnicodeDecodeError as e:
            raise CodecError(f"file is not valid UTF-8: {e}")
        except json.JSONDecodeError as e:
            raise CodecError(f"invalid JSON: {e}")

        if not isinstance(document, dict):
            raise CodecError("expected a JSON object at the top level")
        for key, item in document.items():
            if not isinstance(item, str):
                raise CodecError(f"value for '{key}' must be a string")
        return document

    def encode(self, value: SecretValue) -> bytes:
        return (json.dumps(value, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


CODECS: Dict[str, SecretCodec] = {
    DotenvCodec.name: DotenvCodec(),
    JsonCodec.name: JsonCodec(),
}


def get_codec(name: str) -> SecretCodec:
    """Look up a codec by tag, raising KeyError for unknown tags."""
    return CODECS[name]


def codec_for_path(path: Path, name: Optional[str] = None) -> SecretCodec:
    """
    Resolve the codec for a local file.

    An explicit ``name`` wins; otherwise ``.json`` files use the JSON codec and
    everything else is treated as dotenv.
    """
    if name:
        return get_codec(name)
    if Path(path).suffix.lower() == ".json":
        return CODECS[JsonCodec.name]
    return CODECS[DotenvCodec.name]
