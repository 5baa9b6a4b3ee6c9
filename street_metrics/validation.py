from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)

from .errors import SchemaViolation
from .schema import SCENE_ANALYSIS, FieldSpec, GroupSpec, Member


def _iso_timestamp(value: str) -> str:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError("timestamp must be ISO 8601") from exc
    return value


def _bounds(spec: FieldSpec) -> dict:
    bounds = {}
    if spec.minimum is not None:
        bounds["ge"] = spec.minimum
    if spec.maximum is not None:
        bounds["le"] = spec.maximum
    return bounds


def _annotation(spec: FieldSpec) -> Any:
    if spec.enum is not None:
        return Literal[spec.enum]
    if spec.type == "string":
        if spec.format == "date-time":
            return Annotated[StrictStr, AfterValidator(_iso_timestamp)]
        return StrictStr
    if spec.type == "integer":
        return Annotated[StrictInt, Field(**_bounds(spec))]
    if spec.type == "number":
        return Annotated[float, Field(strict=True, allow_inf_nan=False, **_bounds(spec))]
    if spec.type == "boolean":
        return StrictBool
    raise ValueError(f"unsupported field type {spec.type!r} for {spec.name}")


def build_model(name: str, members: tuple[Member, ...]) -> type[BaseModel]:
    fields: dict[str, Any] = {}
    for member in members:
        if isinstance(member, GroupSpec):
            annotation = build_model(_model_name(member.name), member.fields)
        else:
            annotation = _annotation(member)
        fields[member.name] = (annotation, ...)
    return create_model(name, __config__=ConfigDict(extra="ignore"), **fields)


def _model_name(group: str) -> str:
    return "".join(part.capitalize() for part in group.split("_"))


SceneAnalysisRecord = build_model("SceneAnalysisRecord", SCENE_ANALYSIS)


def _format_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
    return f"{location}: {error.get('msg', 'invalid')}"


def validate_record(payload: Any) -> dict:
    """Check a tool payload against the scene schema.

    Returns the normalized record (unknown keys dropped, declared order).
    Values are never coerced: ``"5"`` is not an integer and ``1`` is not a
    boolean.
    """
    try:
        record = SceneAnalysisRecord.model_validate(payload)
    except ValidationError as exc:
        errors = [_format_error(error) for error in exc.errors()]
        raise SchemaViolation(
            "scene analysis failed schema validation: " + "; ".join(errors[:5]),
            errors,
        ) from exc
    return record.model_dump()
