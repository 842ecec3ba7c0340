"""Request schemas shared by the HTTP and CLI adapters.

Each schema validates operator input with `pydantic` and converts it into the
frozen core record through `to_spec()`.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from vca.core.types import ContainerSpec, ModelIdentity, ProductSpec, SceneConfig, Topping, WorkflowStep
from vca.prompting.scenes import get_preset_scene


class ProductIn(BaseModel):
    id: str
    name: str
    height_cm: float = Field(ge=0)
    category: str = "Plant"
    code: Optional[str] = None
    pot_height_cm: Optional[float] = Field(default=None, ge=0)
    width_cm: Optional[float] = None
    pot_diameter_cm: Optional[float] = None
    main_image: str = ""
    detail_images: List[str] = Field(default_factory=list)

    def to_spec(self) -> ProductSpec:
        return ProductSpec(
            id=self.id,
            name=self.name,
            height_cm=self.height_cm,
            category=self.category,
            code=self.code,
            pot_height_cm=self.pot_height_cm,
            width_cm=self.width_cm,
            pot_diameter_cm=self.pot_diameter_cm,
            main_image=self.main_image,
            detail_images=tuple(self.detail_images),
        )


class ContainerIn(BaseModel):
    id: str
    name: str
    height_cm: float = Field(ge=0)
    diameter_cm: Optional[float] = None
    dimension: Optional[str] = None
    topping: Topping = Topping.SOIL
    color: str = ""
    image_url: Optional[str] = None

    def to_spec(self) -> ContainerSpec:
        return ContainerSpec(
            id=self.id,
            name=self.name,
            height_cm=self.height_cm,
            diameter_cm=self.diameter_cm,
            dimension=self.dimension,
            topping=self.topping,
            color=self.color,
            image_url=self.image_url,
        )


class SceneIn(BaseModel):
    """Either a preset id or free text for a custom scene."""

    preset_id: Optional[str] = None
    prompt: Optional[str] = None


class ModelIn(BaseModel):
    name: str
    face_reference_image: str = ""
    height_cm: float = Field(gt=0)

    def to_spec(self) -> ModelIdentity:
        return ModelIdentity(self.name, self.face_reference_image, self.height_cm)


class LiftIn(BaseModel):
    lift: Optional[float] = None
    clamp: bool = True


class PromptIn(BaseModel):
    prompt: str


class TemplateIn(BaseModel):
    template: str = ""


class SkipIn(BaseModel):
    step: WorkflowStep


class GenerateIn(BaseModel):
    force_retry: bool = False


class SelectImageIn(BaseModel):
    image: str


def scene_from_input(payload: SceneIn) -> SceneConfig:
    """Resolve a scene request to a preset or a fresh custom scene.

    Raises:
        KeyError: Unknown preset id.
        ValueError: Neither preset id nor prompt supplied.
    """
    if payload.preset_id:
        return get_preset_scene(payload.preset_id)
    if payload.prompt and payload.prompt.strip():
        return SceneConfig.custom(payload.prompt.strip())
    raise ValueError("Provide a preset_id or a custom prompt.")
