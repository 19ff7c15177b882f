"""Chart and color-palette tools.

Both return their structured input so the client can render it; the model
does the creative work by filling the schema.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from agentchat.tools.base import ToolContext, tool

# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------


class ChartSeries(BaseModel):
    name: str = Field(description="Series label shown in the legend")
    data: list[float] = Field(description="One value per label")
    color: str | None = Field(default=None, description="Optional CSS color")


class ChartArgs(BaseModel):
    chart_type: Literal["line", "bar", "bar_horizontal", "area"] = Field(alias="chartType")
    title: str
    labels: list[str] = Field(description="X-axis categories")
    series: list[ChartSeries] = Field(min_length=1)
    x_axis_label: str | None = Field(default=None, alias="xAxisLabel")
    y_axis_label: str | None = Field(default=None, alias="yAxisLabel")

    model_config = {"populate_by_name": True}


@tool("create_chart", ChartArgs)
def create_chart(args: ChartArgs, ctx: ToolContext) -> dict:
    """Create a line, bar, horizontal bar or area chart from labelled data series."""
    for series in args.series:
        if len(series.data) != len(args.labels):
            return {
                "error": f"Series '{series.name}' has {len(series.data)} values for {len(args.labels)} labels"
            }
    return args.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Color palettes
# ---------------------------------------------------------------------------


class HSLColor(BaseModel):
    hue: float = Field(ge=0, le=360)
    saturation: float = Field(ge=0, le=100)
    lightness: float = Field(ge=0, le=100)

    def css(self) -> str:
        return f"hsl({self.hue:g}, {self.saturation:g}%, {self.lightness:g}%)"


class ColorCategory(BaseModel):
    name: str
    base: HSLColor
    shades: list[HSLColor] = Field(default_factory=list, max_length=4)


class ColorPaletteArgs(BaseModel):
    primary: ColorCategory
    secondary: ColorCategory
    accent: ColorCategory


def _category(category: ColorCategory) -> dict:
    return {
        "name": category.name,
        "base": category.base.css(),
        "shades": [shade.css() for shade in category.shades],
    }


@tool("generate_color_palette", ColorPaletteArgs)
def generate_color_palette(args: ColorPaletteArgs, ctx: ToolContext) -> dict:
    """Generate a color palette with primary, secondary and accent colors.

    Each color is given in HSL with up to four shades.
    """
    return {
        "palette": {
            "primary": _category(args.primary),
            "secondary": _category(args.secondary),
            "accent": _category(args.accent),
        },
        "generatedAt": datetime.now(UTC).isoformat(),
    }


# ---------------------------------------------------------------------------
# Test tool
# ---------------------------------------------------------------------------


class TemperatureArgs(BaseModel):
    city: str = Field(description="City name")


@tool("get_temperature", TemperatureArgs)
def get_temperature(args: TemperatureArgs, ctx: ToolContext) -> dict:
    """Get the current temperature for a city."""
    return {"city": args.city, "temperature": 30, "unit": "celsius"}
