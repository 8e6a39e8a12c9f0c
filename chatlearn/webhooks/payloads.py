# chatlearn/webhooks/payloads.py
"""
Shapes an automation tool may send as `response_data`, decoded into an
explicit tagged union:

    [{"text": "..."}, ...]              -> TextItems
    {"text"|"content": "...",
     "image_base64": "..."}             -> TextObject
    "..."                               -> RawText
    anything else                       -> Unrecognized
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

TEXT_KEYS = ("text", "content")


@dataclass(frozen=True)
class TextItems:
    texts: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TextObject:
    text: str = ""
    image_base64: Optional[str] = None


@dataclass(frozen=True)
class RawText:
    text: str


@dataclass(frozen=True)
class Unrecognized:
    raw: Any


ResponseData = Union[TextItems, TextObject, RawText, Unrecognized]


@dataclass(frozen=True)
class ResolvedContent:
    text: str
    image_base64: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.image_base64


def _text_of(obj: dict) -> str:
    for key in TEXT_KEYS:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def decode_response_data(raw: Any) -> ResponseData:
    if isinstance(raw, str):
        return RawText(raw)

    if isinstance(raw, list):
        texts = []
        for item in raw:
            if isinstance(item, dict):
                texts.append(_text_of(item))
            elif isinstance(item, str):
                texts.append(item)
        if any(texts):
            return TextItems([t for t in texts if t])
        return Unrecognized(raw)

    if isinstance(raw, dict):
        text = _text_of(raw)
        image = raw.get("image_base64")
        image = image if isinstance(image, str) and image.strip() else None
        if text or image:
            return TextObject(text=text, image_base64=image)
        return Unrecognized(raw)

    return Unrecognized(raw)


def resolve_content(data: ResponseData) -> ResolvedContent:
    """Collapse a decoded payload into one message body. Lists use their first text."""
    if isinstance(data, RawText):
        return ResolvedContent(text=data.text if data.text.strip() else "")
    if isinstance(data, TextItems):
        return ResolvedContent(text=data.texts[0] if data.texts else "")
    if isinstance(data, TextObject):
        return ResolvedContent(text=data.text, image_base64=data.image_base64)
    if isinstance(data, Unrecognized):
        return ResolvedContent(text="")
    raise TypeError(f"Unhandled response_data variant: {type(data).__name__}")
