from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Optional, Union

from gwkit.descriptor.httprule import parse_template
from gwkit.descriptor.model import (
    Binding,
    Body,
    Enum,
    Field,
    FieldPath,
    File,
    Message,
    Method,
    Parameter,
    Service,
)
from gwkit.domain.models import CodeGeneratorRequest, FileProto, HttpRule, MethodProto
from gwkit.errors import DescriptorError

logger = logging.getLogger(__name__)

_UNSAFE_MODULE_CHARS = re.compile(r"[^A-Za-z0-9_]")


@dataclass(frozen=True)
class Found:
    enum: Enum


@dataclass(frozen=True)
class NotFound:
    type_name: str


EnumLookup = Union[Found, NotFound]


def default_py_package(file_name: str) -> str:
    # bookstore/v1/shelf.proto -> bookstore.v1.shelf_pb2
    stem, _ = posixpath.splitext(file_name)
    parts = [_UNSAFE_MODULE_CHARS.sub("_", p) for p in stem.split("/") if p]
    parts[-1] = f"{parts[-1]}_pb2"
    return ".".join(parts)


def _fq(package: str, name: str) -> str:
    return f".{package}.{name}" if package else f".{name}"


class Registry:
    """
    Read-only view of a code generation request: files, messages, enums,
    services, methods and their HTTP bindings, with every cross-file type
    reference resolved.
    """

    def __init__(
        self,
        import_prefix: str = "",
        package_map: Optional[dict[str, str]] = None,
        allow_colon_final_segments: bool = False,
    ) -> None:
        self.import_prefix = import_prefix
        self.package_map = dict(package_map or {})
        self.allow_colon_final_segments = allow_colon_final_segments

        self.files: dict[str, File] = {}
        self._messages: dict[str, Message] = {}
        self._enums: dict[str, Enum] = {}

    # ----------------------------
    # Loading
    # ----------------------------

    def load(self, req: CodeGeneratorRequest) -> None:
        protos = {fp.name: fp for fp in req.proto_file}

        for fp in req.proto_file:
            self._load_file(fp)

        for f in self.files.values():
            for msg in f.messages:
                for fld in msg.fields:
                    if fld.type == "TYPE_MESSAGE":
                        # well-known types are not part of the request; leave unresolved
                        fld.message_type = self._messages.get(fld.type_name)

        for name, f in self.files.items():
            for sp in protos[name].service:
                svc = Service(name=sp.name, file=f)
                for mp in sp.method:
                    svc.methods.append(self._load_method(svc, mp))
                f.services.append(svc)

        logger.debug(
            "loaded %d files, %d messages, %d enums",
            len(self.files), len(self._messages), len(self._enums),
        )

    def _py_package(self, fp: FileProto) -> str:
        pkg = self.package_map.get(fp.name) or fp.python_package or default_py_package(fp.name)
        if self.import_prefix:
            pkg = f"{self.import_prefix.rstrip('.')}.{pkg}"
        return pkg

    def _load_file(self, fp: FileProto) -> None:
        if fp.name in self.files:
            raise DescriptorError(f"duplicate file in request: {fp.name}")
        f = File(name=fp.name, package=fp.package, py_package=self._py_package(fp))

        for mp in fp.message_type:
            msg = Message(name=mp.name, fqmn=_fq(fp.package, mp.name), file=f)
            for fld in mp.field:
                msg.fields.append(
                    Field(
                        name=fld.name,
                        number=fld.number,
                        type=fld.type,
                        type_name=fld.type_name,
                        repeated=fld.label == "LABEL_REPEATED",
                        message=msg,
                    )
                )
            f.messages.append(msg)
            self._messages[msg.fqmn] = msg

        for ep in fp.enum_type:
            en = Enum(name=ep.name, fqen=_fq(fp.package, ep.name), file=f, values=list(ep.value))
            f.enums.append(en)
            self._enums[en.fqen] = en

        self.files[f.name] = f

    def _load_method(self, svc: Service, mp: MethodProto) -> Method:
        meth = Method(
            name=mp.name,
            service=svc,
            request_type=self.lookup_msg(mp.input_type),
            response_type=self.lookup_msg(mp.output_type),
        )
        if mp.http is None:
            return meth

        rules: list[HttpRule] = [mp.http]
        for extra in mp.http.additional_bindings:
            if extra.additional_bindings:
                raise DescriptorError(
                    f"{svc.name}.{mp.name}: additional_binding in additional_binding"
                )
            rules.append(extra)

        for index, rule in enumerate(rules):
            meth.bindings.append(self._new_binding(meth, index, rule))
        return meth

    def _new_binding(self, meth: Method, index: int, rule: HttpRule) -> Binding:
        verb, template = rule.pattern()
        where = f"{meth.service.name}.{meth.name}"
        if verb == "GET" and rule.body:
            raise DescriptorError(f"{where}: needs request body even though http method is GET")

        tmpl = parse_template(template, assume_colon_verb=not self.allow_colon_final_segments)
        b = Binding(index=index, http_method=verb, path_tmpl=tmpl, method=meth)

        for fp in tmpl.fields:
            b.path_params.append(Parameter(field_path=self.resolve_field_path(meth.request_type, fp, where)))

        if rule.body == "*":
            b.body = Body()
        elif rule.body:
            b.body = Body(field_path=self.resolve_field_path(meth.request_type, rule.body, where))
        return b

    def resolve_field_path(self, msg: Message, path: str, where: str = "") -> FieldPath:
        components: list[Field] = []
        cur: Optional[Message] = msg
        for i, name in enumerate(path.split(".")):
            if cur is None:
                raise DescriptorError(
                    f"{where}: {'.'.join(path.split('.')[:i])} is not a message field in {path!r}"
                )
            fld = cur.field_by_name(name)
            if fld is None:
                raise DescriptorError(f"{where}: no field {name!r} found in {cur.name}")
            components.append(fld)
            cur = fld.message_type
        return FieldPath(components=tuple(components))

    # ----------------------------
    # Lookups
    # ----------------------------

    def lookup_file(self, name: str) -> File:
        f = self.files.get(name)
        if f is None:
            raise DescriptorError(f"no such file given: {name}")
        return f

    def lookup_msg(self, fqmn: str) -> Message:
        msg = self._messages.get(fqmn)
        if msg is None:
            raise DescriptorError(f"no message found: {fqmn}")
        return msg

    def lookup_enum(self, type_name: str) -> EnumLookup:
        en = self._enums.get(type_name)
        if en is None:
            return NotFound(type_name=type_name)
        return Found(enum=en)


def load_registry(
    req: CodeGeneratorRequest,
    import_prefix: str = "",
    package_map: Optional[dict[str, str]] = None,
) -> Registry:
    reg = Registry(
        import_prefix=import_prefix,
        package_map=package_map,
        allow_colon_final_segments=req.allow_colon_final_segments,
    )
    reg.load(req)
    return reg
