"""Structured-output contract for one street camera image.

The field taxonomy is declared once as immutable specs. ``to_json_schema``
renders it as the JSON Schema attached to the forced tool call, and
``street_metrics.validation`` checks tool payloads against the same specs.
"""
from dataclasses import dataclass
from typing import Optional, Union

TOOL_NAME = "scene_analysis"
TOOL_DESCRIPTION = "Record the structured analysis of the street camera image"

DAYS_OF_WEEK = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
DAYLIGHT_PHASES = ("night", "dawn", "morning", "midday", "afternoon", "dusk")
PRECIPITATION = ("none", "light_rain", "heavy_rain", "light_snow", "heavy_snow", "sleet", "fog")
ROAD_CONDITIONS = ("dry", "wet", "snow_covered", "icy", "slushy", "flooded")
SKY_CONDITIONS = ("clear", "partly_cloudy", "overcast", "heavy_clouds", "not_visible")
TREE_FOLIAGE = ("bare", "budding", "full", "autumn_colors", "mixed")
SEASONS = ("winter", "spring", "summer", "fall")
ACTIVITY_LEVELS = ("dead", "low", "moderate", "busy", "hectic")


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: str
    description: Optional[str] = None
    enum: Optional[tuple[str, ...]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    # checked locally only; not sent to the model
    format: Optional[str] = None


@dataclass(frozen=True)
class GroupSpec:
    name: str
    fields: tuple[FieldSpec, ...]


Member = Union[FieldSpec, GroupSpec]


def _count(name: str, description: str) -> FieldSpec:
    return FieldSpec(name, "integer", description, minimum=0)


def _percent(name: str, description: str) -> FieldSpec:
    return FieldSpec(name, "integer", description, minimum=0, maximum=100)


def _score(name: str, description: str) -> FieldSpec:
    return FieldSpec(name, "integer", description, minimum=1, maximum=10)


SCENE_ANALYSIS: tuple[Member, ...] = (
    FieldSpec(
        "timestamp",
        "string",
        "ISO 8601 timestamp estimated from the image (YYYY-MM-DDTHH:MM:SS)",
        format="date-time",
    ),
    FieldSpec("day_of_week", "string", enum=DAYS_OF_WEEK),
    FieldSpec("daylight", "string", enum=DAYLIGHT_PHASES),
    GroupSpec(
        "activity",
        (
            _count("vehicles", "Total vehicles visible"),
            _count("pedestrians", "Total pedestrians visible"),
            _count("taxis", "Taxis or rideshare vehicles visible"),
            _count("delivery_vehicles", "Delivery trucks/vans visible"),
            _count("bikes_scooters", "Bikes or scooters visible"),
        ),
    ),
    GroupSpec(
        "atmosphere",
        (
            FieldSpec("visibility_miles", "number", "Estimated visibility in miles", minimum=0),
            FieldSpec("precipitation", "string", enum=PRECIPITATION),
            FieldSpec("road_condition", "string", enum=ROAD_CONDITIONS),
            FieldSpec("sky_condition", "string", enum=SKY_CONDITIONS),
            FieldSpec("fog_haze", "boolean", "Whether fog or haze is present"),
        ),
    ),
    GroupSpec(
        "building_occupancy",
        (
            _percent(
                "residential_windows_lit_pct",
                "Percentage of residential windows that appear lit (0-100)",
            ),
            _percent(
                "office_windows_lit_pct",
                "Percentage of office windows that appear lit (0-100)",
            ),
        ),
    ),
    GroupSpec(
        "street_features",
        (
            FieldSpec("street_lights_on", "boolean", "Whether the street lights are on"),
            FieldSpec(
                "holiday_decorations_on",
                "boolean",
                "Whether holiday decorations/lights are illuminated",
            ),
            FieldSpec("wells_fargo_sign_on", "boolean", "Whether the Wells Fargo sign is lit up"),
            FieldSpec(
                "sidewalks_cleared",
                "boolean",
                "Whether sidewalks appear cleared of snow/debris",
            ),
            FieldSpec("trash_bins_visible", "boolean", "Whether trash bins are visible"),
        ),
    ),
    GroupSpec(
        "seasonal",
        (
            FieldSpec("tree_foliage", "string", enum=TREE_FOLIAGE),
            FieldSpec(
                "holiday_decorations_present",
                "boolean",
                "Whether any holiday decorations are visible (lit or not)",
            ),
            FieldSpec("season_estimate", "string", enum=SEASONS),
        ),
    ),
    GroupSpec(
        "urban_vibe",
        (
            FieldSpec("activity_level", "string", enum=ACTIVITY_LEVELS),
            _score("hustle_score", "1-10 scale of how busy/hustling the scene feels"),
            _score("cozy_factor", "1-10 scale of how cozy/inviting the scene feels"),
            FieldSpec(
                "would_go_outside",
                "boolean",
                "Whether the conditions look inviting enough to go outside",
            ),
        ),
    ),
)


def _field_schema(spec: FieldSpec) -> dict:
    schema: dict = {"type": spec.type}
    if spec.description:
        schema["description"] = spec.description
    if spec.enum is not None:
        schema["enum"] = list(spec.enum)
    if spec.minimum is not None:
        schema["minimum"] = spec.minimum
    if spec.maximum is not None:
        schema["maximum"] = spec.maximum
    return schema


def _object_schema(members: tuple[Member, ...]) -> dict:
    properties = {}
    for member in members:
        if isinstance(member, GroupSpec):
            properties[member.name] = _object_schema(member.fields)
        else:
            properties[member.name] = _field_schema(member)
    return {
        "type": "object",
        "properties": properties,
        "required": [member.name for member in members],
    }


def to_json_schema(members: tuple[Member, ...] = SCENE_ANALYSIS) -> dict:
    """Render the declared taxonomy as a JSON Schema object.

    A fresh dict is built on every call so callers may mutate the result
    without touching the shared specs; the output is identical each time.
    """
    return _object_schema(members)


def tool_definition() -> dict:
    return {
        "name": TOOL_NAME,
        "description": TOOL_DESCRIPTION,
        "input_schema": to_json_schema(),
    }

