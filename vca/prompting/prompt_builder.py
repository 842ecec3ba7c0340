"""Staging prompt assembly.

This module only turns already-validated staging values into prompt text.
Geometry derivation lives in `vca.staging.height_validator`; provider-specific
prompt suffixes live in the provider clients.

Design constraints:
    - Deterministic construction for identical inputs.
    - Single-pass substitution: values inserted for one token are never
      re-scanned for other tokens, so substitution order cannot matter.
    - Unrecognized `{{...}}` tokens are left verbatim; no error is raised.
    - No I/O and no global state mutation.
"""

from __future__ import annotations

import re
from typing import Mapping

from vca.core.types import ContainerSpec, ProductSpec, SceneConfig
from vca.staging.height_validator import format_cm


# =========================================================
# TOKENS
# =========================================================
# Bit-exact token names recognized inside `{{...}}`. `containerDimension` is
# an alias of `formattedDimension`.

TOKENS = (
    "productName",
    "productHeight",
    "potHeight",
    "containerName",
    "containerHeight",
    "heightDiff",
    "finalHeight",
    "hrate",
    "formattedDimension",
    "containerDimension",
    "topping",
    "scene",
)

_TOKEN_PATTERN = re.compile(r"\{\{(\w+)\}\}")


# =========================================================
# DEFAULT TEMPLATE
# =========================================================
# Used whenever no saved template exists in the settings store.

DEFAULT_PROMPT_TEMPLATE = """The plant is {{productHeight}}cm tall, with original pot {{potHeight}}cm. The new container is {{containerHeight}}cm tall, which is {{heightDiff}}cm taller than the original pot. Final height will be {{finalHeight}}cm.

Container surface uses {{topping}} as topping material (2cm thick).
Container Name: {{containerName}}
Container Dimension: {{formattedDimension}}

IMPORTANT CONSTRAINTS:
1. Must use the exact plant from the input image, do not change any appearance
2. Must use the exact container from the input image, do not change any appearance
3. Only combine them together, do not create new objects
4. Maintain all physical properties: lighting, texture, color, perspective
5. Do not apply any artistic processing or creative interpretation
6. Output must look like a real photograph, not AI-generated art"""


# =========================================================
# SESSION DEFAULTS
# =========================================================
# Fallbacks applied when a product/container/scene (or one of its fields) is
# absent from the session.

DEFAULT_PRODUCT_NAME = "Plant"
DEFAULT_PRODUCT_HEIGHT = 100
DEFAULT_POT_HEIGHT = 15
DEFAULT_CONTAINER_NAME = "Generic Pot"
DEFAULT_CONTAINER_HEIGHT = 18
DEFAULT_CONTAINER_DIAMETER = 30
DEFAULT_TOPPING = "Soil"
DEFAULT_SCENE_TEXT = "Studio setting: white background"


def format_hrate(final_height: float, container_height: float) -> str:
    """Ratio of final height to container height with exactly one decimal."""
    if container_height <= 0:
        return "0.0"
    return f"{final_height / container_height:.1f}"


def token_values(
    product_name: str,
    product_height: float,
    pot_height: float,
    container_name: str,
    container_height: float,
    container_dimension: str,
    topping: str,
    scene: str,
    lift_override: float | None = None,
) -> dict[str, str]:
    """Compute the string value of every recognized token.

    `heightDiff` is the lift override when given, else the plain difference
    between container and pot height (which may be negative here; admission
    is checked elsewhere).
    """
    height_diff = lift_override if lift_override is not None else container_height - pot_height
    final_height = product_height + height_diff
    formatted_dimension = container_dimension or (
        f"{format_cm(container_height)}x{format_cm(container_height)}cm"
    )

    return {
        "productName": product_name,
        "productHeight": format_cm(product_height),
        "potHeight": format_cm(pot_height),
        "containerName": container_name,
        "containerHeight": format_cm(container_height),
        "heightDiff": format_cm(height_diff),
        "finalHeight": format_cm(final_height),
        "hrate": format_hrate(final_height, container_height),
        "formattedDimension": formatted_dimension,
        "containerDimension": formatted_dimension,
        "topping": topping,
        "scene": scene,
    }


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Replace every `{{token}}` present in `values`; keep others verbatim."""

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in values:
            return values[name]
        return match.group(0)

    return _TOKEN_PATTERN.sub(_substitute, template)


def find_tokens(template: str) -> list[str]:
    """Return distinct token names in order of first appearance."""
    seen: list[str] = []
    for name in _TOKEN_PATTERN.findall(template):
        if name not in seen:
            seen.append(name)
    return seen


def unknown_tokens(template: str) -> list[str]:
    """Return token names the engine will leave unsubstituted."""
    return [name for name in find_tokens(template) if name not in TOKENS]


def build_prompt(
    product_name: str,
    product_height: float,
    pot_height: float,
    container_name: str,
    container_height: float,
    container_dimension: str,
    topping: str,
    scene: str,
    lift_override: float | None = None,
    template: str | None = None,
) -> str:
    """Build the staging prompt from explicit values.

    Args:
        lift_override: Operator lift; replaces `container_height - pot_height`.
        template: Custom template; the built-in default is used when empty.

    Returns:
        Prompt text with all recognized tokens substituted.
    """
    values = token_values(
        product_name,
        product_height,
        pot_height,
        container_name,
        container_height,
        container_dimension,
        topping,
        scene,
        lift_override,
    )
    return render_template(template or DEFAULT_PROMPT_TEMPLATE, values)


def build_session_prompt(
    product: ProductSpec | None,
    container: ContainerSpec | None,
    scene: SceneConfig | None,
    lift_override: float | None = None,
    template: str | None = None,
) -> str:
    """Build the prompt for a session, falling back to defaults for gaps."""
    product_height = DEFAULT_PRODUCT_HEIGHT
    pot_height = DEFAULT_POT_HEIGHT
    product_name = DEFAULT_PRODUCT_NAME
    if product is not None:
        product_name = product.name or DEFAULT_PRODUCT_NAME
        if product.height_cm is not None:
            product_height = product.height_cm
        if product.pot_height_cm is not None:
            pot_height = product.pot_height_cm

    container_name = DEFAULT_CONTAINER_NAME
    container_height = DEFAULT_CONTAINER_HEIGHT
    diameter = DEFAULT_CONTAINER_DIAMETER
    dimension = None
    topping = DEFAULT_TOPPING
    if container is not None:
        container_name = container.name or DEFAULT_CONTAINER_NAME
        if container.height_cm is not None:
            container_height = container.height_cm
        if container.diameter_cm is not None:
            diameter = container.diameter_cm
        dimension = container.dimension
        topping = getattr(container.topping, "value", container.topping) or DEFAULT_TOPPING

    if not dimension:
        dimension = (
            f"{format_cm(diameter)}×{format_cm(diameter)}×{format_cm(container_height)}cm"
        )

    scene_text = DEFAULT_SCENE_TEXT
    if scene is not None and scene.prompt_template:
        scene_text = scene.prompt_template

    return build_prompt(
        product_name,
        product_height,
        pot_height,
        container_name,
        container_height,
        dimension,
        topping,
        scene_text,
        lift_override,
        template,
    )


# =========================================================
# SCENE PROMPT
# =========================================================
# The final scene step reuses the staging prompt. Templates that do not place
# the scene through `{{scene}}` get it appended as a trailing block.

def build_scene_prompt(staging_prompt: str, scene_text: str, template: str | None = None) -> str:
    """Extend the staging prompt with the scene description when needed."""
    if "{{scene}}" in (template or DEFAULT_PROMPT_TEMPLATE):
        return staging_prompt
    return f"{staging_prompt}\n\nScene: {scene_text}"
