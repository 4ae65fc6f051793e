# mcp_bridge/mcp/core/schema.py
"""
Schema Translator
=================
Chuyển JSON-Schema-like `inputSchema` của một tool thành
`ValidatedSignature` có thể kiểm tra input lúc runtime.

Mỗi property được map vào một tập field kinds đóng:
- string, enum, number, boolean, sequence, opaque

Signature được build bằng pydantic `create_model` với strict types,
nên "1" không được chấp nhận cho number và 1 không được chấp nhận
cho string.
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    create_model,
)
from pydantic import ValidationError as PydanticValidationError

from mcp_bridge.mcp.core.errors import ValidationError


class FieldKind(str, Enum):
    """Supported field kinds for tool signatures"""
    STRING = "string"
    ENUM = "enum"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SEQUENCE = "sequence"
    OPAQUE = "opaque"


# JSON Schema primitive type -> field kind
_TYPE_KINDS = {
    "string": FieldKind.STRING,
    "number": FieldKind.NUMBER,
    "integer": FieldKind.NUMBER,
    "boolean": FieldKind.BOOLEAN,
    "array": FieldKind.SEQUENCE,
}

_KIND_ANNOTATIONS = {
    FieldKind.STRING: StrictStr,
    FieldKind.NUMBER: Union[StrictInt, StrictFloat],
    FieldKind.BOOLEAN: StrictBool,
    FieldKind.SEQUENCE: List[Any],
    FieldKind.OPAQUE: Any,
}

_KIND_JSON_TYPES = {
    FieldKind.STRING: "string",
    FieldKind.ENUM: "string",
    FieldKind.NUMBER: "number",
    FieldKind.BOOLEAN: "boolean",
    FieldKind.SEQUENCE: "array",
}

_ENUM_VALUE_TYPES = (str, int, float, bool)

_NO_DEFAULT = object()


def _enum_member(values: Tuple[Any, ...]) -> Callable[[Any], Any]:
    """Membership check that does not let True stand in for 1"""

    def check(value: Any) -> Any:
        if not any(value == v and isinstance(value, bool) == isinstance(v, bool) for v in values):
            raise ValueError(f"value outside declared enum {list(values)}")
        return value

    return check


@dataclass(frozen=True)
class FieldSpec:
    """
    Một field của signature.

    Example:
        FieldSpec(
            name="action",
            kind=FieldKind.ENUM,
            required=True,
            enum=("read", "write")
        )
    """
    name: str
    kind: FieldKind
    required: bool = False
    description: Optional[str] = None
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = _NO_DEFAULT
    json_type: Optional[str] = None

    @property
    def has_default(self) -> bool:
        return self.default is not _NO_DEFAULT

    @property
    def type_name(self) -> str:
        return self.json_type or self.kind.value

    def annotation(self) -> Any:
        if self.kind == FieldKind.ENUM:
            return Literal[self.enum]
        base = StrictInt if self.json_type == "integer" else _KIND_ANNOTATIONS[self.kind]
        if self.enum:
            return Annotated[base, AfterValidator(_enum_member(self.enum))]
        return base

    def to_json_schema(self) -> Dict[str, Any]:
        """Convert back to JSON Schema for function calling declarations"""
        schema: Dict[str, Any] = {}
        if self.json_type:
            schema["type"] = self.json_type
        elif self.kind in _KIND_JSON_TYPES:
            schema["type"] = _KIND_JSON_TYPES[self.kind]
        if self.kind == FieldKind.SEQUENCE:
            schema["items"] = {}
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.description:
            schema["description"] = self.description
        if self.has_default:
            schema["default"] = self.default
        return schema


class ValidatedSignature:
    """
    Runtime-validated call signature.

    `validate()` trả về dict chỉ gồm các declared properties (unknown
    keys bị bỏ qua) hoặc raise ValidationError với field-level cause.

    Signature "opaque" (fields=None) là fallback khi schema vắng mặt
    hoặc không hiểu được: nó chấp nhận mọi input và forward nguyên vẹn.
    """

    def __init__(self, fields: Optional[List[FieldSpec]] = None, name: str = "ToolInput"):
        self._fields: Optional[Tuple[FieldSpec, ...]] = tuple(fields) if fields is not None else None
        self._model: Optional[type] = None
        if self._fields is not None:
            self._model = self._build_model(name, self._fields)

    @staticmethod
    def _build_model(name: str, fields: Tuple[FieldSpec, ...]) -> type:
        # Positional attribute names + aliases keep arbitrary property
        # names (dashes, leading underscores, BaseModel attributes) legal.
        definitions = {}
        for index, spec in enumerate(fields):
            annotation = spec.annotation()
            if spec.required:
                definitions[f"f{index}"] = (annotation, Field(..., alias=spec.name))
            else:
                definitions[f"f{index}"] = (Optional[annotation], Field(None, alias=spec.name))

        return create_model(
            name,
            __config__=ConfigDict(extra="ignore", populate_by_name=False),
            **definitions
        )

    @property
    def is_opaque(self) -> bool:
        return self._fields is None

    @property
    def fields(self) -> List[FieldSpec]:
        return list(self._fields or ())

    @property
    def required(self) -> List[str]:
        return [f.name for f in self.fields if f.required]

    def validate(self, payload: Any) -> Dict[str, Any]:
        """
        Apply the signature to a candidate input.

        Returns:
            Structurally validated input (declared properties only)

        Raises:
            ValidationError: wrong type, missing required field,
                value outside declared enum
        """
        if payload is None:
            payload = {}

        if self._model is None:
            if isinstance(payload, Mapping):
                return dict(payload)
            return {"input": payload}

        if not isinstance(payload, Mapping):
            raise ValidationError(
                "Invalid tool input",
                field="$",
                reason=f"wrong type: expected object, got {type(payload).__name__}"
            )

        try:
            instance: BaseModel = self._model.model_validate(dict(payload))
        except PydanticValidationError as e:
            raise self._translate_errors(e) from e

        result = instance.model_dump(by_alias=True, exclude_unset=True)
        for spec in self._fields:
            if spec.name not in result and spec.has_default:
                result[spec.name] = copy.deepcopy(spec.default)
        return result

    def _translate_errors(self, error: PydanticValidationError) -> ValidationError:
        specs = {spec.name: spec for spec in self._fields}
        field_errors = []
        seen = set()

        for err in error.errors():
            loc = err.get("loc") or ("$",)
            field_name = str(loc[0])
            # Union members report one error each; keep the first per field
            if field_name in seen:
                continue
            seen.add(field_name)

            spec = specs.get(field_name)
            if err.get("type") == "missing":
                reason = "missing required field"
            elif err.get("type") in ("literal_error", "value_error") and spec is not None and spec.enum:
                reason = f"value outside declared enum {list(spec.enum)}"
            elif spec is not None:
                reason = f"wrong type: expected {spec.type_name}"
            else:
                reason = err.get("msg", "invalid value")
            field_errors.append({"field": field_name, "reason": reason})

        first = field_errors[0] if field_errors else {"field": "$", "reason": "invalid input"}
        return ValidationError(
            "Invalid tool input",
            field=first["field"],
            reason=first["reason"],
            errors=field_errors
        )

    def to_json_schema(self) -> Dict[str, Any]:
        """Export as JSON Schema (Gemini / MCP function declaration format)"""
        if self.is_opaque:
            return {"type": "object", "properties": {}, "additionalProperties": True}
        return {
            "type": "object",
            "properties": {spec.name: spec.to_json_schema() for spec in self._fields},
            "required": self.required
        }

    def __repr__(self) -> str:
        if self.is_opaque:
            return "<ValidatedSignature: opaque>"
        return f"<ValidatedSignature: {', '.join(f.name for f in self._fields)}>"


def _field_from_property(name: str, prop: Any, required: bool) -> FieldSpec:
    if not isinstance(prop, Mapping):
        return FieldSpec(name=name, kind=FieldKind.OPAQUE, required=required)

    description = prop.get("description")
    default = prop["default"] if "default" in prop else _NO_DEFAULT
    enum = prop.get("enum")
    prop_type = prop.get("type")
    if not isinstance(prop_type, str):
        prop_type = None

    if isinstance(enum, (list, tuple)) and enum and all(isinstance(v, _ENUM_VALUE_TYPES) for v in enum):
        enum = tuple(enum)
        if prop_type is None:
            prop_type = _infer_enum_type(enum)
    else:
        enum = None

    if prop_type == "string" and enum:
        kind = FieldKind.ENUM
    else:
        kind = _TYPE_KINDS.get(prop_type, FieldKind.OPAQUE)

    return FieldSpec(
        name=name,
        kind=kind,
        required=required,
        description=description,
        enum=enum,
        default=default,
        json_type=prop_type if prop_type in _TYPE_KINDS else None
    )


def _infer_enum_type(values: Tuple[Any, ...]) -> Optional[str]:
    """JSON type shared by every enum value, None when they are mixed"""
    if all(isinstance(v, str) for v in values):
        return "string"
    if all(isinstance(v, bool) for v in values):
        return "boolean"
    if all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return "integer"
    if all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
        return "number"
    return None


def translate(schema: Any, name: str = "ToolInput") -> ValidatedSignature:
    """
    Translate a tool's declared parameter schema into a signature.

    Never fails: a missing or unrecognized schema yields the opaque
    signature.

    Example:
        signature = translate({
            "type": "object",
            "properties": {"action": {"type": "string", "enum": ["read", "write"]}},
            "required": ["action"]
        })
        signature.validate({"action": "read"})   # {"action": "read"}
        signature.validate({"action": "delete"}) # raises ValidationError
    """
    if not isinstance(schema, Mapping):
        return ValidatedSignature(None)

    properties = schema.get("properties")
    schema_type = schema.get("type", "object" if properties is not None else None)
    if schema_type != "object":
        return ValidatedSignature(None)
    if properties is None:
        properties = {}
    if not isinstance(properties, Mapping):
        return ValidatedSignature(None)

    required = schema.get("required") or []
    if not isinstance(required, (list, tuple)):
        required = []

    fields = [
        _field_from_property(str(prop_name), prop, prop_name in required)
        for prop_name, prop in properties.items()
    ]
    return ValidatedSignature(fields, name=name)
