from __future__ import annotations

import logging
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from gwkit.errors import ConfigurationError

logger = logging.getLogger(__name__)

SEPARATORS: dict[str, str] = {
    "csv": ",",
    "pipes": "|",
    "ssv": " ",
    "tsv": "\t",
}


class GeneratorParams(BaseModel):
    """Options of one generation run (protoc-style ``key=value`` parameters)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    output_path: str = "gateway"
    paths: Literal["import", "source_relative"] = "import"
    module: str = ""
    import_prefix: str = ""
    register_func_suffix: str = "Handler"
    gen_service: bool = False
    metrics: str = ""
    error_encoder: str = ""
    repeated_path_param_separator: Literal["csv", "pipes", "ssv", "tsv"] = "csv"
    allow_patch_feature: bool = True
    package_map: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_options(self) -> "GeneratorParams":
        if self.module and self.paths != "import":
            raise ValueError("cannot use module= with paths=")
        if self.error_encoder and "." not in self.error_encoder.strip("."):
            raise ValueError("error_encoder must be a dotted module.function path")
        return self

    @property
    def separator(self) -> str:
        return SEPARATORS[self.repeated_path_param_separator]


def parse_parameter(parameter: str) -> dict[str, Any]:
    """
    Split a protoc parameter string into option values.

      "gen_service,output_path=api/gw,Mfoo/bar.proto=acme.bar_pb2"
        -> {"gen_service": True, "output_path": "api/gw",
            "package_map": {"foo/bar.proto": "acme.bar_pb2"}}

    A bare flag means ``True``. ``M<file>=<module>`` entries map a proto file
    to the Python module holding its generated messages.
    """
    values: dict[str, Any] = {}
    package_map: dict[str, str] = {}

    for raw in parameter.split(","):
        item = raw.strip()
        if not item:
            continue
        name, sep, value = item.partition("=")
        name = name.strip()
        if not name:
            raise ConfigurationError(f"cannot set flag {item!r}")
        if not sep:
            values[name] = True
            continue
        if name.startswith("M"):
            package_map[name[1:]] = value
            continue
        values[name] = value

    if package_map:
        values["package_map"] = package_map
    return values


def build_params(parameter: str = "", overrides: Optional[dict[str, Any]] = None) -> GeneratorParams:
    values = parse_parameter(parameter)
    for key, value in (overrides or {}).items():
        if key == "package_map":
            values.setdefault("package_map", {}).update(value)
        else:
            values[key] = value

    try:
        params = GeneratorParams(**values)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"invalid generator parameters: {details}") from e

    logger.debug("generator params: %s", params.model_dump())
    return params
