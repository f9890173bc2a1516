"""Pydantic models describing stub definitions."""

from __future__ import annotations

import functools
import json
import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ConfigurationError

DEFAULT_CONTENT_TYPE = "application/json; charset=utf-8"


@functools.lru_cache(maxsize=256)
def compile_path_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


class StubRequest(BaseModel):
    """Criteria an incoming request must satisfy for a stub to be selected.

    Every declared field must match. ``path`` is an exact comparison against
    the query-stripped path, ``path_pattern`` a full-match regular expression;
    declaring both is rejected. With neither, any path matches.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    method: str = Field(default="GET", min_length=1)
    path: str | None = None
    path_pattern: str | None = Field(default=None, alias="pathPattern")
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] | None = Field(default=None, alias="queryParams")
    body: Any = None
    body_contains: str | None = Field(default=None, alias="bodyContains")

    @model_validator(mode="after")
    def _check_path_rules(self) -> "StubRequest":
        if self.path is not None and self.path_pattern is not None:
            raise ConfigurationError(
                f"Stub request declares both 'path' ({self.path!r}) and "
                f"'pathPattern' ({self.path_pattern!r}); use only one of them."
            )
        if self.path_pattern is not None:
            try:
                compile_path_pattern(self.path_pattern)
            except re.error as exc:
                raise ConfigurationError(
                    f"Stub request 'pathPattern' {self.path_pattern!r} is not a valid regular expression: {exc}"
                ) from exc
        return self

    @property
    def path_regex(self) -> re.Pattern[str] | None:
        if self.path_pattern is None:
            return None
        return compile_path_pattern(self.path_pattern)

    @property
    def needs_body(self) -> bool:
        """True when matching this request requires reading the body."""

        return self.body is not None or self.body_contains is not None

    def describe(self) -> str:
        if self.path_pattern is not None:
            target = f"~{self.path_pattern}"
        else:
            target = self.path or "*"
        return f"{self.method.upper()} {target}"

    def as_serializable(self) -> dict[str, Any]:
        return _compact(self.model_dump(mode="json", by_alias=True))


class StubResponse(BaseModel):
    """Canned response returned when a stub matches."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: int = Field(default=200, ge=100, le=599)
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    delay_ms: int | None = Field(default=None, ge=0, alias="delayMs")

    def content_type(self) -> str | None:
        """Declared Content-Type, else the JSON default when a body is present."""

        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        if self.body is not None:
            return DEFAULT_CONTENT_TYPE
        return None

    def render_body(self) -> str:
        if self.body is None:
            return ""
        return json.dumps(self.body)

    def as_serializable(self) -> dict[str, Any]:
        return _compact(self.model_dump(mode="json", by_alias=True))


class SingleReply(BaseModel):
    """The stub always answers with the same response."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    response: StubResponse


class SequenceReply(BaseModel):
    """The stub walks through ``responses`` and repeats the last one."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["sequence"] = "sequence"
    responses: tuple[StubResponse, ...] = Field(min_length=1)


Reply = Annotated[Union[SingleReply, SequenceReply], Field(discriminator="kind")]


def _describe_raw_request(raw: Any) -> str:
    if isinstance(raw, StubRequest):
        return raw.describe()
    if isinstance(raw, dict):
        target = raw.get("path") or raw.get("pathPattern") or raw.get("path_pattern") or "<any>"
        return str(target)
    return "<any>"


class StubDefinition(BaseModel):
    """A request matcher paired with a single response or a response sequence.

    The wire format carries either ``response`` or a non-empty ``responses``
    list. Both are folded into :attr:`reply` at construction time, so a
    definition always holds exactly one of the two variants.
    """

    model_config = ConfigDict(frozen=True)

    request: StubRequest
    reply: Reply

    @model_validator(mode="before")
    @classmethod
    def _fold_responses(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "reply" in data:
            return data
        payload = dict(data)
        response = payload.pop("response", None)
        responses = payload.pop("responses", None)
        label = _describe_raw_request(payload.get("request"))

        if responses is not None:
            if not isinstance(responses, (list, tuple)):
                raise ConfigurationError(f"Stub for '{label}': 'responses' must be a list of responses.")
            if not responses:
                raise ConfigurationError(f"Stub for '{label}': 'responses' must not be empty.")
        if response is not None and responses is not None:
            raise ConfigurationError(
                f"Stub for '{label}' must define exactly one of 'response' or 'responses' (not both)."
            )
        if response is None and responses is None:
            raise ConfigurationError(
                f"Stub for '{label}' must define exactly one of 'response' or 'responses' (neither given)."
            )

        if responses is not None:
            payload["reply"] = {"kind": "sequence", "responses": list(responses)}
        else:
            payload["reply"] = {"kind": "single", "response": response}
        return payload

    @property
    def resolved_responses(self) -> tuple[StubResponse, ...]:
        if isinstance(self.reply, SequenceReply):
            return self.reply.responses
        return (self.reply.response,)

    @property
    def is_sequence(self) -> bool:
        return isinstance(self.reply, SequenceReply)

    def describe(self) -> str:
        label = self.request.describe()
        if self.is_sequence:
            return f"{label} (sequence of {len(self.resolved_responses)})"
        return label

    def as_serializable(self) -> dict[str, Any]:
        """Return the JSON/YAML friendly wire form."""

        payload: dict[str, Any] = {"request": self.request.as_serializable()}
        if isinstance(self.reply, SequenceReply):
            payload["responses"] = [item.as_serializable() for item in self.reply.responses]
        else:
            payload["response"] = self.reply.response.as_serializable()
        return payload
