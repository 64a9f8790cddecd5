from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

FieldLabel = Literal["LABEL_OPTIONAL", "LABEL_REPEATED", "LABEL_REQUIRED"]

_VERBS: tuple[str, ...] = ("get", "put", "post", "delete", "patch")


class FieldProto(BaseModel):
    name: str
    number: int = 0
    type: str = "TYPE_STRING"
    type_name: str = ""  # .pkg.Name for TYPE_ENUM / TYPE_MESSAGE
    label: FieldLabel = "LABEL_OPTIONAL"


class MessageProto(BaseModel):
    name: str
    field: list[FieldProto] = Field(default_factory=list)


class EnumProto(BaseModel):
    name: str
    value: list[str] = Field(default_factory=list)


class CustomPattern(BaseModel):
    kind: str
    path: str


class HttpRule(BaseModel):
    """google.api.HttpRule, restricted to what the gateway consumes."""

    get: Optional[str] = None
    put: Optional[str] = None
    post: Optional[str] = None
    delete: Optional[str] = None
    patch: Optional[str] = None
    custom: Optional[CustomPattern] = None
    body: str = ""
    additional_bindings: list["HttpRule"] = Field(default_factory=list)

    @model_validator(mode="after")
    def _exactly_one_pattern(self) -> "HttpRule":
        set_verbs = [v for v in _VERBS if getattr(self, v) is not None]
        count = len(set_verbs) + (1 if self.custom is not None else 0)
        if count != 1:
            raise ValueError(f"http rule must set exactly one pattern, got {count}")
        return self

    def pattern(self) -> tuple[str, str]:
        """(HTTP verb, path template)."""
        if self.custom is not None:
            return self.custom.kind.upper(), self.custom.path
        for v in _VERBS:
            tmpl = getattr(self, v)
            if tmpl is not None:
                return v.upper(), tmpl
        raise AssertionError("unreachable: validated http rule without pattern")


class MethodProto(BaseModel):
    name: str
    input_type: str
    output_type: str
    http: Optional[HttpRule] = None


class ServiceProto(BaseModel):
    name: str
    method: list[MethodProto] = Field(default_factory=list)


class FileProto(BaseModel):
    name: str
    package: str = ""
    python_package: str = ""
    message_type: list[MessageProto] = Field(default_factory=list)
    enum_type: list[EnumProto] = Field(default_factory=list)
    service: list[ServiceProto] = Field(default_factory=list)


class CodeGeneratorRequest(BaseModel):
    file_to_generate: list[str] = Field(default_factory=list)
    parameter: str = ""
    proto_file: list[FileProto] = Field(default_factory=list)
    allow_colon_final_segments: bool = False


class OutputFile(BaseModel):
    name: str
    content: str


class CodeGeneratorResponse(BaseModel):
    error: Optional[str] = None
    file: list[OutputFile] = Field(default_factory=list)
