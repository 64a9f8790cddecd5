from __future__ import annotations

import enum
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from gwkit.analysis.binding import BindingAnalysis, BindingAnalyzer, MethodAnalysis
from gwkit.descriptor.httprule import Segment, route_key, route_path, variable_parts
from gwkit.descriptor.model import Enum, File, Message, Method, Parameter, Service
from gwkit.descriptor.registry import Found, Registry
from gwkit.domain.models import OutputFile
from gwkit.errors import ConfigurationError, NoTargetService, RenderError
from gwkit.generator import printer
from gwkit.generator.artifacts import (
    ENDPOINTS_MODULE,
    MUXKIT_MODULE,
    ROUTES_MODULE,
    SERVICE_MODULE,
    UNIT_SUFFIX,
    Artifact,
    ContractMethod,
    HandlerDecl,
    PathParamDecl,
    ServiceContract,
)
from gwkit.generator.params import GeneratorParams
from gwkit.imports.registry import ImportRef, ImportRegistry
from gwkit.naming.casing import camel
from gwkit.naming.casing import route_name as _route_name

logger = logging.getLogger(__name__)

# reserved first, so they always keep their own names in generated code
BASE_IMPORTS: tuple[str, ...] = (
    "typing",
    "fastapi",
    "fastapi.responses",
    "google.protobuf.json_format",
    "gwkit.runtime",
)

_NOT_IDENT = re.compile(r"[^A-Za-z0-9_]")


class UnitState(str, enum.Enum):
    START = "start"
    NORMALIZING = "normalizing"
    FILTERING = "filtering"
    NO_TARGET_SERVICE = "no_target_service"
    READY = "ready"
    RENDERING = "rendering"
    EMITTED = "emitted"


@dataclass
class UnitOutcome:
    file: File
    state: UnitState = UnitState.START
    module: str = ""
    output: Optional[OutputFile] = None

    def advance(self, state: UnitState) -> None:
        logger.debug("%s: %s -> %s", self.file.name, self.state.value, state.value)
        self.state = state


Named = Union[Service, Method, Message]


@dataclass
class GenerationContext:
    """
    State of one generation run. Built once per run, passed to every
    component and dropped when the run ends.
    """

    registry: Registry
    params: GeneratorParams
    imports: ImportRegistry = field(default_factory=ImportRegistry)
    base_imports: list[ImportRef] = field(default_factory=list)
    extra_imports: list[ImportRef] = field(default_factory=list)
    metrics: str = ""
    error_encoder: str = ""
    _names: dict[int, str] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self.base_imports = [self.imports.ref(p) for p in BASE_IMPORTS]

        if self.params.metrics:
            ref = self.imports.ref(self.params.metrics)
            self.extra_imports.append(ref)
            self.metrics = ref.local_name
        if self.params.error_encoder:
            module, func = self.params.error_encoder.rsplit(".", 1)
            ref = self.imports.ref(module)
            if ref not in self.extra_imports:
                self.extra_imports.append(ref)
            self.error_encoder = f"{ref.local_name}.{func}"

    def base(self, *paths: str) -> tuple[ImportRef, ...]:
        return tuple(ref for ref in self.base_imports if ref.path in paths)

    def display_name(self, obj: Named) -> str:
        # camel() is idempotent; the cache makes sure each object is converted once
        key = id(obj)
        if key not in self._names:
            self._names[key] = camel(obj.name)
        return self._names[key]

    def qualified_message(self, msg: Message) -> str:
        # _pb2 modules expose messages under their proto names
        return f"{self.imports.ref(msg.file.py_package).local_name}.{msg.name}"

    def qualified_enum(self, en: Enum) -> str:
        return f"{self.imports.ref(en.file.py_package).local_name}.{en.name}"


def _contract_class(svc_name: str) -> str:
    return svc_name if svc_name.endswith("Service") else f"{svc_name}Service"


def _full_name(svc: Service) -> str:
    return f"{svc.file.package}.{svc.name}" if svc.file.package else svc.name


def _dedup(refs: list[ImportRef]) -> tuple[ImportRef, ...]:
    out: list[ImportRef] = []
    for r in refs:
        if r not in out:
            out.append(r)
    return tuple(out)


class ArtifactAssembler:
    def __init__(self, ctx: GenerationContext) -> None:
        self.ctx = ctx
        self.analyzer = BindingAnalyzer(ctx.registry, ctx.imports)
        self.skipped: list[str] = []

    # ----------------------------
    # Naming / paths
    # ----------------------------

    def unit_module(self, file: File) -> str:
        """
        Module name of a unit artifact, per output-path strategy:

          paths=import          bookstore/v1/shelf.proto -> shelf_gw
          paths=source_relative bookstore/v1/shelf.proto -> bookstore_v1_shelf_gw
          module=acme           acme.bookstore.v1.shelf_pb2 -> bookstore_v1_shelf_gw
        """
        params = self.ctx.params
        stem = posixpath.splitext(file.name)[0]
        base = posixpath.basename(stem)

        if params.module:
            prefix = params.module.replace("/", ".").rstrip(".") + "."
            if not file.py_package.startswith(prefix):
                raise ConfigurationError(
                    f"{file.py_package}: python package does not match module prefix: {params.module}"
                )
            dirs = file.py_package[len(prefix):].split(".")[:-1]
            name = "_".join(dirs + [base])
        elif params.paths == "source_relative":
            name = stem.replace("/", "_")
        else:
            name = base

        name = _NOT_IDENT.sub("_", name)
        if name[:1].isdigit():
            name = f"_{name}"
        return f"{name}{UNIT_SUFFIX}"

    def output_name(self, art: Artifact) -> str:
        root = self.ctx.params.output_path.strip("/")
        return posixpath.join(root, art.filename) if root else art.filename

    # ----------------------------
    # Unit artifacts
    # ----------------------------

    def target_services(self, file: File) -> list[Service]:
        return [svc for svc in file.services if any(m.bindings for m in svc.methods)]

    def _normalize(self, file: File) -> None:
        for msg in file.messages:
            self.ctx.display_name(msg)
        for svc in file.services:
            self.ctx.display_name(svc)
            for m in svc.methods:
                logger.debug("Processing %s.%s", svc.name, m.name)
                self.ctx.display_name(m)

    def _contract(self, svc: Service) -> ServiceContract:
        methods = tuple(
            ContractMethod(
                name=self.ctx.display_name(m),
                request_type=self.ctx.qualified_message(m.request_type),
                response_type=self.ctx.qualified_message(m.response_type),
            )
            for m in svc.methods
            if m.bindings
        )
        return ServiceContract(
            class_name=_contract_class(self.ctx.display_name(svc)),
            full_name=_full_name(svc),
            methods=methods,
        )

    def _path_param(self, p: Parameter, var: Segment) -> PathParamDecl:
        fp = str(p.field_path)
        enum_type = ""
        if p.is_enum:
            res = self.ctx.registry.lookup_enum(p.target.type_name)
            if isinstance(res, Found):
                enum_type = self.ctx.qualified_enum(res.enum)
        return PathParamDecl(
            field_path=fp,
            route_key=route_key(fp),
            parts=variable_parts(var),
            repeated=p.is_repeated,
            enum_type=enum_type,
        )

    def _handler(self, ba: BindingAnalysis, class_name: str) -> HandlerDecl:
        b = ba.binding
        meth = b.method
        name = self.ctx.display_name(meth)
        params = self.ctx.params

        body_field = ""
        if b.body is not None and not b.body.is_wildcard:
            body_field = str(b.body.field_path)

        mask = ""
        if params.allow_patch_feature and b.http_method == "PATCH" and body_field:
            mask = ba.field_mask_field

        variables = {s.value: s for s in b.path_tmpl.segments if s.kind == "variable"}
        return HandlerDecl(
            class_name=class_name,
            method_name=name,
            handler_func=f"{name}{params.register_func_suffix}",
            http_method=b.http_method,
            template=b.path_tmpl.template,
            route_path=route_path(b.path_tmpl),
            route_name=_route_name(name),
            request_type=self.ctx.qualified_message(meth.request_type),
            response_type=self.ctx.qualified_message(meth.response_type),
            body_field=body_field,
            body_wildcard=ba.body_is_wildcard,
            field_mask_field=mask,
            path_params=tuple(self._path_param(p, variables[str(p.field_path)]) for p in b.path_params),
            query_filter=ba.query_filter,
        )

    def _handlers(self, analyses: list[MethodAnalysis]) -> tuple[HandlerDecl, ...]:
        # class names must be unique per module: GetBook, GetBook_2, ...
        counts: dict[str, int] = {}
        out: list[HandlerDecl] = []
        for ma in analyses:
            for ba in ma.bindings:
                base = self.ctx.display_name(ma.method)
                counts[base] = counts.get(base, 0) + 1
                class_name = base if counts[base] == 1 else f"{base}_{counts[base]}"
                out.append(self._handler(ba, class_name))
        return tuple(out)

    def build_unit(self, file: File, outcome: Optional[UnitOutcome] = None) -> Artifact:
        """
        Build the artifact model of one generation unit.

        Raises NoTargetService when no service of ``file`` has a method with
        an HTTP binding.
        """
        outcome = outcome or UnitOutcome(file=file)

        outcome.advance(UnitState.NORMALIZING)
        self._normalize(file)

        outcome.advance(UnitState.FILTERING)
        targets = self.target_services(file)
        if not targets:
            outcome.advance(UnitState.NO_TARGET_SERVICE)
            raise NoTargetService(file.name)
        outcome.advance(UnitState.READY)

        own = self.ctx.imports.ref(file.py_package)
        seen: set[str] = {ref.path for ref in self.ctx.base_imports} | {own.path}
        imports: list[ImportRef] = list(self.ctx.base_imports) + [own]

        analyses: list[MethodAnalysis] = []
        for svc in targets:
            for m in svc.methods:
                ma = self.analyzer.analyze_method(file, m, seen)
                imports.extend(ma.imports)
                analyses.append(ma)
        imports.extend(self.ctx.extra_imports)

        return Artifact(
            kind="unit",
            module=self.unit_module(file),
            source=file.name,
            imports=_dedup(imports),
            contracts=tuple(self._contract(svc) for svc in targets),
            handlers=self._handlers(analyses),
            metrics=self.ctx.metrics,
            error_encoder=self.ctx.error_encoder,
            separator=self.ctx.params.separator,
        )

    def assemble_unit(self, file: File) -> UnitOutcome:
        outcome = UnitOutcome(file=file)
        logger.info("Processing %s", file.name)
        try:
            art = self.build_unit(file, outcome)
        except NoTargetService as e:
            logger.info("%s", e)
            self.skipped.append(file.name)
            return outcome

        outcome.module = art.module
        outcome.advance(UnitState.RENDERING)
        outcome.output = self._emit(art)
        outcome.advance(UnitState.EMITTED)
        return outcome

    # ----------------------------
    # Run-level artifacts
    # ----------------------------

    def build_service(self, files: list[File]) -> Artifact:
        """Aggregate GatewayService contract over every target service of ``files``."""
        seen: set[str] = {ref.path for ref in self.ctx.base_imports}
        imports: list[ImportRef] = list(self.ctx.base("typing"))
        contracts: list[ServiceContract] = []

        for file in files:
            self._normalize(file)
            targets = self.target_services(file)
            if not targets:
                continue
            own = self.ctx.imports.ref(file.py_package)
            if own.path not in seen:
                seen.add(own.path)
                imports.append(own)
            for svc in targets:
                for m in svc.methods:
                    imports.extend(self.analyzer.type_imports(file, m, seen))
                contracts.append(self._contract(svc))

        if not contracts:
            raise NoTargetService(", ".join(f.name for f in files) or "<no files>")

        return Artifact(
            kind="service",
            module=SERVICE_MODULE,
            imports=_dedup(imports),
            contracts=tuple(contracts),
        )

    def build_router(self) -> Artifact:
        return Artifact(kind="router", module=ROUTES_MODULE, imports=self.ctx.base("typing", "fastapi"))

    def build_endpoints(self) -> Artifact:
        imports = (self.ctx.imports.ref("dataclasses"),) + self.ctx.base("typing", "fastapi")
        return Artifact(kind="endpoints", module=ENDPOINTS_MODULE, imports=imports)

    def build_muxkit(self, unit_modules: list[str]) -> Artifact:
        return Artifact(
            kind="muxkit",
            module=MUXKIT_MODULE,
            imports=self.ctx.base("typing", "fastapi"),
            unit_modules=tuple(unit_modules),
        )

    def _emit(self, art: Artifact) -> OutputFile:
        text = printer.render(art)
        name = self.output_name(art)
        logger.debug("Will emit %s", name)
        return OutputFile(name=name, content=text)

    def assemble(self, targets: list[File]) -> list[OutputFile]:
        """
        Produce every output file of the run, in order: unit modules (target
        order), the optional service contract, router, endpoint registry and
        muxkit module.
        """
        out: list[OutputFile] = []
        unit_modules: list[str] = []
        owners: dict[str, str] = {}

        for file in targets:
            outcome = self.assemble_unit(file)
            if outcome.output is None:
                continue
            if outcome.module in owners:
                raise RenderError(
                    f"{file.name}: artifact {outcome.output.name} already generated for {owners[outcome.module]}"
                )
            owners[outcome.module] = file.name
            unit_modules.append(outcome.module)
            out.append(outcome.output)

        if self.ctx.params.gen_service:
            try:
                out.append(self._emit(self.build_service(targets)))
            except NoTargetService as e:
                logger.info("service contract skipped: %s", e)

        out.append(self._emit(self.build_router()))
        out.append(self._emit(self.build_endpoints()))
        out.append(self._emit(self.build_muxkit(unit_modules)))
        return out
