from __future__ import annotations

import ast
import json
import logging

from gwkit.errors import RenderError
from gwkit.generator.artifacts import (
    ENDPOINTS_MODULE,
    ROUTES_MODULE,
    Artifact,
    HandlerDecl,
    PathParamDecl,
    ServiceContract,
)
from gwkit.imports.registry import ImportRef

logger = logging.getLogger(__name__)

GENERATED_BY = "# Code generated by gwkit. DO NOT EDIT."

I1 = " " * 4
I2 = " " * 8
I3 = " " * 12
I4 = " " * 16


def _q(s: str) -> str:
    # json string literals are valid Python string literals
    return json.dumps(s)


def _header(docstring: str, source: str = "") -> list[str]:
    lines = [GENERATED_BY]
    if source:
        lines.append(f"# source: {source}")
    lines.append(f'"""{docstring}"""')
    lines.append("")
    lines.append("from __future__ import annotations")
    return lines


def _import_block(imports: tuple[ImportRef, ...], local: list[str]) -> list[str]:
    """Standard library first, then third-party, then package-relative imports."""
    lines: list[str] = []
    groups = [
        [i.statement() for i in imports if i.standard],
        [i.statement() for i in imports if not i.standard],
        local,
    ]
    for group in groups:
        if group:
            lines.append("")
            lines.extend(group)
    return lines


# ----------------------------
# Unit module
# ----------------------------


def _contract(c: ServiceContract) -> list[str]:
    lines = [
        "",
        "",
        f"class {c.class_name}(typing.Protocol):",
        f'{I1}"""Service contract for {c.full_name}."""',
    ]
    for m in c.methods:
        lines.append("")
        lines.append(
            f"{I1}async def {m.name}(self, request: {m.request_type}) -> {m.response_type}: ..."
        )
    return lines


def _path_value(p: PathParamDecl) -> str:
    # {name=shelves/*} is rebuilt as "/".join(["shelves", <captured name__1>])
    if len(p.parts) == 1 and p.parts[0].kind == "param":
        return f"request.path_params[{_q(p.parts[0].value)}]"
    items = ", ".join(
        f"request.path_params[{_q(part.value)}]" if part.kind == "param" else _q(part.value)
        for part in p.parts
    )
    return f'"/".join([{items}])'


def _path_param(p: PathParamDecl, sep: str) -> str:
    raw = _path_value(p)
    if p.repeated:
        items = f"runtime.split_repeated({raw}, {_q(sep)})"
        value = f"[{p.enum_type}.Value(v) for v in {items}]" if p.enum_type else items
    else:
        value = f"{p.enum_type}.Value({raw})" if p.enum_type else raw
    return f"{I2}runtime.set_field(payload, {_q(p.field_path)}, {value})"


def _decode(h: HandlerDecl, art: Artifact) -> list[str]:
    lines = [
        "",
        f"{I1}async def decode(self, request: fastapi.Request) -> {h.request_type}:",
        f"{I2}try:",
        f"{I3}return json_format.ParseDict(await self.payload(request), {h.request_type}())",
        f"{I2}except (ValueError, json_format.ParseError) as exc:",
        f"{I3}raise fastapi.HTTPException(status_code=400, detail=str(exc)) from exc",
        "",
        f"{I1}async def payload(self, request: fastapi.Request) -> dict[str, typing.Any]:",
        f"{I2}payload: dict[str, typing.Any] = {{}}",
    ]
    if h.body_wildcard:
        lines.append(f"{I2}runtime.merge_body(payload, await request.json())")
    elif h.body_field:
        lines.append(f"{I2}body = await request.json()")
        lines.append(f"{I2}runtime.set_field(payload, {_q(h.body_field)}, body)")
        if h.field_mask_field:
            lines.append(
                f"{I2}runtime.set_field(payload, {_q(h.field_mask_field)}, "
                f"runtime.field_mask_from_body(body))"
            )
    for p in h.path_params:
        lines.append(_path_param(p, art.separator))
    if h.query_filter is not None:
        lines.append(
            f"{I2}runtime.populate_query_parameters("
            f"payload, request.query_params.multi_items(), "
            f"self.query_filter, self.repeated_query_fields, {h.request_type}.DESCRIPTOR)"
        )
    lines.append(f"{I2}return payload")
    return lines


def _register(h: HandlerDecl, art: Artifact) -> list[str]:
    call = "await self.encode(await endpoint(await self.decode(request)))"
    lines = [
        "",
        f"{I1}def register(self, svc: typing.Any) -> Route:",
        f"{I2}endpoint = self.make(svc)",
        "",
        f"{I2}async def {h.handler_func}(request: fastapi.Request) -> fastapi.Response:",
    ]
    if art.error_encoder:
        lines += [
            f"{I3}try:",
            f"{I4}return {call}",
            f"{I3}except Exception as exc:",
            f"{I4}return {art.error_encoder}(exc)",
        ]
    else:
        lines.append(f"{I3}return {call}")

    handler = h.handler_func
    if art.metrics:
        handler = f"{art.metrics}.for_handler({h.handler_func}, {_q(h.method_name)})"
    lines += [
        "",
        f"{I2}return Route(",
        f"{I3}path={_q(h.route_path)},",
        f"{I3}handler={handler},",
        f"{I3}method={_q(h.http_method)},",
        f"{I3}name={_q(h.route_name)},",
        f"{I2})",
    ]
    return lines


def _handler(h: HandlerDecl, art: Artifact) -> list[str]:
    lines = [
        "",
        "",
        f"class {h.class_name}:",
        f'{I1}"""{h.http_method} {h.template}"""',
    ]
    if h.query_filter is not None:
        repeated = ", ".join(_q(r) for r in h.query_filter.repeated)
        lines += [
            "",
            f"{I1}query_filter = {h.query_filter.literal('runtime')}",
            f"{I1}repeated_query_fields = frozenset({{{repeated}}})"
            if repeated
            else f"{I1}repeated_query_fields: frozenset[str] = frozenset()",
        ]
    lines += _register(h, art)
    lines += [
        "",
        f"{I1}def make(self, svc: typing.Any) -> typing.Callable[..., typing.Awaitable[typing.Any]]:",
        f"{I2}return svc.{h.method_name}",
    ]
    lines += _decode(h, art)
    lines += [
        "",
        f"{I1}async def encode(self, response: {h.response_type}) -> fastapi.Response:",
        f"{I2}return responses.JSONResponse(",
        f"{I3}json_format.MessageToDict(response, preserving_proto_field_name=True)",
        f"{I2})",
    ]
    return lines


def render_unit(art: Artifact) -> str:
    lines = _header(f"HTTP gateway handlers for {art.source}.", art.source)
    lines += _import_block(art.imports, [f"from .{ENDPOINTS_MODULE} import Route, register_handler"])
    for c in art.contracts:
        lines += _contract(c)
    for h in art.handlers:
        lines += _handler(h, art)
    lines += ["", ""]
    lines += [f"register_handler({h.class_name}())" for h in art.handlers]
    return "\n".join(lines) + "\n"


# ----------------------------
# Run-level modules
# ----------------------------


def render_service(art: Artifact) -> str:
    lines = _header("Aggregate contract of every service exposed through the gateway.")
    lines += _import_block(art.imports, [])
    lines += [
        "",
        "",
        "class GatewayService(typing.Protocol):",
        f'{I1}"""Every gateway-exposed method, in registration order."""',
    ]
    for c in art.contracts:
        lines.append("")
        lines.append(f"{I1}# {c.full_name}")
        for i, m in enumerate(c.methods):
            if i:
                lines.append("")
            lines.append(
                f"{I1}async def {m.name}(self, request: {m.request_type}) -> {m.response_type}: ..."
            )
    return "\n".join(lines) + "\n"


def render_router(art: Artifact) -> str:
    lines = _header("Router over every registered gateway handler.")
    lines += _import_block(art.imports, [f"from .{ENDPOINTS_MODULE} import HANDLERS"])
    lines += [
        "",
        "ManualRouter = typing.Callable[[typing.Any, fastapi.APIRouter], fastapi.APIRouter]",
        "",
        "",
        "def router(svc: typing.Any, manual: typing.Optional[ManualRouter] = None) -> fastapi.APIRouter:",
        f"{I1}r = fastapi.APIRouter()",
        "",
        f"{I1}for h in HANDLERS:",
        f"{I2}route = h.register(svc)",
        f"{I2}r.add_route(route.path, route.handler, methods=[route.method], name=route.name or None)",
        "",
        f"{I1}if manual is not None:",
        f"{I2}r = manual(svc, r)",
        "",
        f"{I1}return r",
    ]
    return "\n".join(lines) + "\n"


def render_endpoints(art: Artifact) -> str:
    lines = _header("Endpoint registry shared by the generated handler modules.")
    lines += _import_block(art.imports, [])
    lines += [
        "",
        "",
        "@dataclasses.dataclass(frozen=True)",
        "class Route:",
        f"{I1}path: str",
        f"{I1}handler: typing.Callable[[fastapi.Request], typing.Awaitable[fastapi.Response]]",
        f"{I1}method: str",
        f'{I1}name: str = ""',
        "",
        "",
        "class Endpointer(typing.Protocol):",
        f"{I1}def register(self, svc: typing.Any) -> Route: ...",
        "",
        f"{I1}def make(self, svc: typing.Any) -> typing.Callable[..., typing.Awaitable[typing.Any]]: ...",
        "",
        f"{I1}async def decode(self, request: fastapi.Request) -> typing.Any: ...",
        "",
        f"{I1}async def encode(self, response: typing.Any) -> fastapi.Response: ...",
        "",
        "",
        "HANDLERS: list[Endpointer] = []",
        "",
        "",
        "def register_handler(h: Endpointer) -> None:",
        f"{I1}HANDLERS.append(h)",
    ]
    return "\n".join(lines) + "\n"


def render_muxkit(art: Artifact) -> str:
    lines = _header("Runtime registration: loads every generated handler module and builds the app.")
    local = [f"from . import {m}  # noqa: F401" for m in art.unit_modules]
    local.append(f"from .{ROUTES_MODULE} import ManualRouter, router")
    lines += _import_block(art.imports, local)
    lines += [
        "",
        "",
        "def new_app(",
        f"{I1}svc: typing.Any,",
        f"{I1}manual: typing.Optional[ManualRouter] = None,",
        f"{I1}**kwargs: typing.Any,",
        ") -> fastapi.FastAPI:",
        f"{I1}app = fastapi.FastAPI(**kwargs)",
        f"{I1}app.include_router(router(svc, manual))",
        f"{I1}return app",
    ]
    return "\n".join(lines) + "\n"


_RENDERERS = {
    "unit": render_unit,
    "service": render_service,
    "router": render_router,
    "endpoints": render_endpoints,
    "muxkit": render_muxkit,
}


def check_syntax(text: str, filename: str) -> None:
    try:
        ast.parse(text, filename=filename)
    except SyntaxError as e:
        logger.error("%s: %s\n%s", filename, e, text)
        raise RenderError(f"{filename}: generated code is not valid Python: {e}") from e


def render(art: Artifact) -> str:
    text = _RENDERERS[art.kind](art)
    check_syntax(text, art.filename)
    return text
