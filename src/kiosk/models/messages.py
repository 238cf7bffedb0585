from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _ViewerModel(BaseModel):
    # Viewers speak camelCase JSON
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MouseEventType(str, Enum):
    MOVED = "mouseMoved"
    PRESSED = "mousePressed"
    RELEASED = "mouseReleased"


class KeyEventType(str, Enum):
    DOWN = "keyDown"
    UP = "keyUp"


class MouseEventMessage(_ViewerModel):
    type: Literal["mouseEvent"] = "mouseEvent"
    event_type: MouseEventType
    x: float
    y: float
    button: Literal["left", "middle", "right"] | None = None
    # Size of the surface the viewer rendered the frame on
    surface_width: float | None = Field(default=None, gt=0)
    surface_height: float | None = Field(default=None, gt=0)


class KeyEventMessage(_ViewerModel):
    type: Literal["keyEvent"] = "keyEvent"
    event_type: KeyEventType
    key: str
    text: str | None = None


class ScrollMessage(_ViewerModel):
    type: Literal["scroll"] = "scroll"
    delta_x: float = 0
    delta_y: float = 0


ViewerMessage = Annotated[
    MouseEventMessage | KeyEventMessage | ScrollMessage,
    Field(discriminator="type"),
]

_viewer_message_adapter: TypeAdapter[ViewerMessage] = TypeAdapter(ViewerMessage)


def parse_viewer_message(raw: str | bytes) -> ViewerMessage:
    """Validate one JSON message received from a viewer connection.

    Raises:
        pydantic.ValidationError: if the payload is not a known message.
    """
    return _viewer_message_adapter.validate_json(raw)


class FrameMessage(BaseModel):
    type: Literal["frame"] = "frame"
    data: str  # base64-encoded image, as produced by the engine
    metadata: dict[str, Any] = {}
