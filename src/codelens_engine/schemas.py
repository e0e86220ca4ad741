from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests


class RunRequest(CamelModel):
    language: str = Field(validation_alias=AliasChoices("language", "guestLanguage"))
    code: str = Field("", validation_alias=AliasChoices("code", "sourceText"))
    intent: str = ""
    stdin: str = Field("", validation_alias=AliasChoices("input", "stdin"))


class DiagnoseRequest(CamelModel):
    language: str = Field(validation_alias=AliasChoices("language", "guestLanguage"))
    code: str = Field("", validation_alias=AliasChoices("code", "sourceText"))


class TraceRequest(CamelModel):
    language: str = Field(validation_alias=AliasChoices("language", "guestLanguage"))
    code: str = Field("", validation_alias=AliasChoices("code", "sourceText"))
    stdin: str = Field("", validation_alias=AliasChoices("input", "stdin"))


class LevelSubmitRequest(CamelModel):
    level_id: int = Field(validation_alias=AliasChoices("levelId", "level_id"))
    language: str = Field(validation_alias=AliasChoices("language", "guestLanguage"))
    code: str = Field("", validation_alias=AliasChoices("code", "sourceText"))


# Responses


class RunResponse(CamelModel):
    success: bool
    stdout: str
    stderr: str
    message: str
    exit_code: int | None
    timed_out: bool
    compile_error: bool
    generated_code: str = ""
    flowchart: str = ""
    steps: list[int] = Field(default_factory=list)
    algorithm_steps: list[str] = Field(default_factory=list)


class DiagnoseResponse(CamelModel):
    success: bool
    summary: str
    steps: list[str]
    fixed_code: str = ""


class TraceStepModel(CamelModel):
    line_number: int
    event_kind: Literal["line", "call", "return", "error"]
    source_line_text: str
    variables: dict[str, str]
    output_so_far: str
    function_name: str | None = None
    return_value: str | None = None
    error_message: str | None = None


class TraceResponse(CamelModel):
    trace_steps: list[TraceStepModel]
    final_stdout: str
    degraded: bool
    truncated: bool
    timed_out: bool


class LevelResponse(CamelModel):
    passed: bool
    message: str
    hint: str


class LanguagesResponse(CamelModel):
    languages: list[str]


# Interactive session events (client -> server)


class InitEvent(BaseModel):
    type: Literal["init"]
    language: str = Field(validation_alias=AliasChoices("language", "guestLanguage"))
    code: str = Field(validation_alias=AliasChoices("code", "sourceText"))


class InputEvent(BaseModel):
    type: Literal["input"]
    text: str = Field(validation_alias=AliasChoices("text", "data"))


class KillEvent(BaseModel):
    type: Literal["kill"]


SessionEvent = Annotated[Union[InitEvent, InputEvent, KillEvent], Field(discriminator="type")]

SESSION_EVENT_ADAPTER: TypeAdapter[SessionEvent] = TypeAdapter(SessionEvent)
