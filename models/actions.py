"""Websocket action vocabulary as a tagged union keyed on `action`."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class _Action(BaseModel):
    request_id: Optional[Any] = None


class AuthenticateAction(_Action):
    action: Literal["authenticate"]
    token: str


class NavigateAction(_Action):
    action: Literal["navigate"]
    url: str


class InitialLoadAction(_Action):
    action: Literal["initial_load"]


class GetMessagesAction(_Action):
    action: Literal["get_messages"]


class GenerationProgressAction(_Action):
    action: Literal["get_generation_progress"]


class ExtractVideoUrlsAction(_Action):
    action: Literal["extract_all_video_urls"]


class GetVideoUrlAction(_Action):
    action: Literal["get_video_url"]


class FindAndClickAction(_Action):
    action: Literal["find_and_click"]
    selector: str
    timeout: int = Field(default=2000, ge=0, le=60000)


class SaveChatAction(_Action):
    action: Literal["save_chat"]
    session_id: str = Field(alias="sessionId", min_length=1)
    messages: List[Dict[str, Any]]
    title: Optional[str] = None


class UploadedFile(BaseModel):
    name: str
    content: str
    type: str = "application/octet-stream"


class UploadFilesAction(_Action):
    action: Literal["upload_files"]
    files: List[UploadedFile] = Field(min_length=1)
    navigate_to_home: bool = Field(default=False, alias="navigateToHome")


class SendMessageAction(_Action):
    action: Literal["send_message"]
    message: str = Field(min_length=1)
    current_path: Optional[str] = Field(default=None, alias="currentPath")


Action = Annotated[
    Union[
        AuthenticateAction,
        NavigateAction,
        InitialLoadAction,
        GetMessagesAction,
        GenerationProgressAction,
        ExtractVideoUrlsAction,
        GetVideoUrlAction,
        FindAndClickAction,
        SaveChatAction,
        UploadFilesAction,
        SendMessageAction,
    ],
    Field(discriminator="action"),
]

ACTION_ADAPTER: TypeAdapter = TypeAdapter(Action)
ACTION_NAMES = (
    "authenticate",
    "navigate",
    "initial_load",
    "get_messages",
    "get_generation_progress",
    "extract_all_video_urls",
    "get_video_url",
    "find_and_click",
    "save_chat",
    "upload_files",
    "send_message",
)


def parse_action(payload: Dict[str, Any]):
    """Validate a decoded frame into one of the action models.

    Raises pydantic.ValidationError for unknown actions or bad fields.
    """
    return ACTION_ADAPTER.validate_python(payload)
