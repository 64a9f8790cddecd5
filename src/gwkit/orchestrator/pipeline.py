from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from gwkit.analysis.binding import BindingAnalyzer
from gwkit.descriptor.model import File
from gwkit.descriptor.registry import Registry, load_registry
from gwkit.domain.models import CodeGeneratorRequest, CodeGeneratorResponse, OutputFile
from gwkit.errors import DescriptorError, GwkitError
from gwkit.generator.assembler import ArtifactAssembler, GenerationContext
from gwkit.generator.params import GeneratorParams, build_params

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerateResult:
    params: GeneratorParams
    targets: list[str]
    files: list[OutputFile]
    skipped: list[str]   # targets that produced no unit artifact


@dataclass(frozen=True)
class BindingRow:
    service: str
    method: str
    http_method: str
    path: str
    body: str            # "*", a field path, or ""
    path_fields: list[str]
    query_fields: list[str]


def parse_request(text: str) -> CodeGeneratorRequest:
    try:
        return CodeGeneratorRequest.model_validate_json(text)
    except ValidationError as e:
        raise DescriptorError(f"invalid code generator request: {e}") from e


def read_request(path: Optional[Path] = None, text: Optional[str] = None) -> CodeGeneratorRequest:
    if text is None:
        if path is None:
            raise ValueError("either path or text is required")
        text = path.read_text(encoding="utf-8")
    return parse_request(text)


def _prepare(
    req: CodeGeneratorRequest,
    overrides: Optional[dict[str, Any]] = None,
) -> tuple[GeneratorParams, Registry, list[File]]:
    # options are validated before anything is loaded or emitted
    params = build_params(req.parameter, overrides)
    reg = load_registry(req, import_prefix=params.import_prefix, package_map=params.package_map)
    targets = [reg.lookup_file(name) for name in req.file_to_generate]
    return params, reg, targets


def run_generate(
    req: CodeGeneratorRequest,
    overrides: Optional[dict[str, Any]] = None,
) -> GenerateResult:
    logger.debug("Processing code generator request")
    params, reg, targets = _prepare(req, overrides)

    ctx = GenerationContext(registry=reg, params=params)
    assembler = ArtifactAssembler(ctx)
    files = assembler.assemble(targets)

    logger.debug("Processed code generator request: %d files", len(files))
    return GenerateResult(
        params=params,
        targets=[t.name for t in targets],
        files=files,
        skipped=list(assembler.skipped),
    )


def generate_response(
    req: CodeGeneratorRequest,
    overrides: Optional[dict[str, Any]] = None,
) -> CodeGeneratorResponse:
    """Run the whole pipeline; any failure becomes the response's single error."""
    try:
        result = run_generate(req, overrides)
    except GwkitError as e:
        logger.error("generation failed: %s", e)
        return CodeGeneratorResponse(error=str(e))
    return CodeGeneratorResponse(file=result.files)


def write_files(files: list[OutputFile], out_dir: Path) -> list[Path]:
    written: list[Path] = []
    for f in files:
        p = out_dir / f.name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(f.content, encoding="utf-8")
        written.append(p)
    return written


def inspect_bindings(
    req: CodeGeneratorRequest,
    overrides: Optional[dict[str, Any]] = None,
) -> list[BindingRow]:
    """Flat view of every binding of the target files and how its fields are mapped."""
    params, reg, targets = _prepare(req, overrides)
    ctx = GenerationContext(registry=reg, params=params)
    analyzer = BindingAnalyzer(reg, ctx.imports)

    rows: list[BindingRow] = []
    for f in targets:
        for svc in f.services:
            for m in svc.methods:
                for b in m.bindings:
                    ba = analyzer.analyze_binding(b)
                    body = "*" if ba.body_is_wildcard else ",".join(sorted(ba.body_fields))
                    rows.append(
                        BindingRow(
                            service=ctx.display_name(svc),
                            method=ctx.display_name(m),
                            http_method=b.http_method,
                            path=b.path_tmpl.template,
                            body=body,
                            path_fields=[str(p.field_path) for p in b.path_params],
                            query_fields=ba.query_filter.free_fields if ba.query_filter else [],
                        )
                    )
    return rows
