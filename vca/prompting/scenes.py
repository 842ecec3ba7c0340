"""Preset contextual scenes offered for the final scene step."""

from __future__ import annotations

from vca.core.types import SceneConfig


PRESET_SCENES: tuple[SceneConfig, ...] = (
    SceneConfig(
        id="scene_beach",
        name="Coastal Beach House",
        prompt_template=(
            "A bright, airy coastal living room with the plant near a large window "
            "overlooking the ocean."
        ),
    ),
    SceneConfig(
        id="scene_loft",
        name="Industrial Loft",
        prompt_template=(
            "A modern industrial loft with brick walls and concrete floors, featuring "
            "the plant as a focal point."
        ),
    ),
    SceneConfig(
        id="scene_minimal",
        name="Minimalist Studio",
        prompt_template=(
            "A clean, high-key minimalist studio background with soft shadows, "
            "highlighting the plant."
        ),
    ),
)


def get_preset_scene(scene_id: str) -> SceneConfig:
    """Look up a preset by id.

    Raises:
        KeyError: When no preset has that id.
    """
    for scene in PRESET_SCENES:
        if scene.id == scene_id:
            return scene
    raise KeyError(scene_id)
