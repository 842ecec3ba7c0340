"""Data contracts for a staging session.

Architectural role:
    Defines the records exchanged between the HTTP/CLI adapters and the
    `WorkflowStateMachine`, plus the workflow step enumeration and its
    display-stage table.

Mutability:
    Product, container, scene and model records are frozen: the workflow
    replaces them wholesale and never mutates them in place. `GeometryResult`
    is derived state and is rebuilt on every relevant input change.
    `GeneratedAssets` and `WorkflowSession` are mutated only by the owning
    state machine.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from vca.image.reference import ImageReference
from vca.staging.history import HistoryRingBuffer


class WorkflowStep(str, Enum):
    """Ordered workflow states. `INPUT` is initial, `OUTPUT` terminal."""

    INPUT = "INPUT"
    POTTED_PLANT = "POTTED_PLANT"
    GENERATION_BASE = "GENERATION_BASE"
    GENERATION_SCENE = "GENERATION_SCENE"
    REFINEMENT = "REFINEMENT"
    OUTPUT = "OUTPUT"

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self)

    @property
    def display_stage(self) -> "DisplayStage":
        return STEP_DISPLAY_STAGES[self]


class DisplayStage(str, Enum):
    """Progress-stepper stages shown to the operator."""

    INPUT = "INPUT"
    POTTED_PLANT = "POTTED_PLANT"
    SCENE = "SCENE"
    GENERATE = "GENERATE"

    @property
    def label(self) -> str:
        position = list(DisplayStage).index(self) + 1
        return f"0{position} {self.value.replace('_', ' ')}"


STEP_ORDER: tuple[WorkflowStep, ...] = tuple(WorkflowStep)

# Every workflow step lights exactly one stepper stage.
STEP_DISPLAY_STAGES: dict[WorkflowStep, DisplayStage] = {
    WorkflowStep.INPUT: DisplayStage.INPUT,
    WorkflowStep.POTTED_PLANT: DisplayStage.POTTED_PLANT,
    WorkflowStep.GENERATION_BASE: DisplayStage.SCENE,
    WorkflowStep.GENERATION_SCENE: DisplayStage.SCENE,
    WorkflowStep.REFINEMENT: DisplayStage.GENERATE,
    WorkflowStep.OUTPUT: DisplayStage.GENERATE,
}


class Topping(str, Enum):
    """Surface-fill material covering the lift inside a container."""

    WHITE_PEBBLES = "White Pebbles"
    BLACK_PEBBLES = "Black Pebbles"
    MIXED_PEBBLES = "Mixed Pebbles"
    ARTIFICIAL_MOSS = "Artificial Moss"
    COCONUT_FIBER = "Coconut Fiber"
    BARK = "Bark"
    SOIL = "Soil"


@dataclass(frozen=True)
class ProductSpec:
    """Product (usually a potted plant) to be staged.

    Attributes:
        height_cm: Overall product height including its original nursery pot.
        pot_height_cm: Height of the original nursery pot; `None` when unknown.
        main_image: Static reference photo URL, also used as fallback image.
    """

    id: str
    name: str
    height_cm: float
    category: str = "Plant"
    code: str | None = None
    pot_height_cm: float | None = None
    width_cm: float | None = None
    pot_diameter_cm: float | None = None
    main_image: str = ""
    detail_images: tuple[str, ...] = ()


@dataclass(frozen=True)
class ContainerSpec:
    """Decorative container the product is planted into."""

    id: str
    name: str
    height_cm: float
    diameter_cm: float | None = None
    dimension: str | None = None
    topping: Topping = Topping.SOIL
    color: str = ""
    image_url: str | None = None


@dataclass(frozen=True)
class ModelIdentity:
    """Human model used for scale shots. Does not feed the staging prompt."""

    name: str
    face_reference_image: str
    height_cm: float


@dataclass(frozen=True)
class SceneConfig:
    """Contextual scene description inserted through the `{{scene}}` token."""

    id: str
    name: str
    prompt_template: str
    is_custom: bool = False

    @classmethod
    def custom(cls, prompt_template: str, created_at: float | None = None) -> "SceneConfig":
        """Create a user-authored scene with an id derived from creation time."""
        millis = int((created_at if created_at is not None else time.time()) * 1000)
        return cls(
            id=f"custom_{millis}",
            name="Custom User Scene",
            prompt_template=prompt_template,
            is_custom=True,
        )


@dataclass
class GeometryResult:
    """Derived staging geometry for the current product/container pair."""

    lift_height: float
    visual_total_height: float
    is_valid: bool
    messages: list[str] = field(default_factory=list)


@dataclass
class GeneratedAssets:
    """Generation results attached to a session.

    `base_image` is an independent pointer: it may reference an item of
    `history`, a fallback image that never entered the history, or the
    `"error"` sentinel.
    """

    base_image: ImageReference | None = None
    is_fallback: bool = False
    is_loading: bool = False
    model_used: str | None = None
    history: HistoryRingBuffer = field(default_factory=HistoryRingBuffer)
    scene_images: list[ImageReference] = field(default_factory=list)
    final_images: list[ImageReference] = field(default_factory=list)


@dataclass
class WorkflowSession:
    """Aggregate state of one staging session."""

    current_step: WorkflowStep = WorkflowStep.INPUT
    product: ProductSpec | None = None
    container: ContainerSpec | None = None
    scene: SceneConfig | None = None
    model: ModelIdentity | None = None
    custom_lift: float | None = None
    custom_prompt: str | None = None
    prompt_template: str | None = None
    selected_model_name: str | None = None
    geometry: GeometryResult | None = None
    assets: GeneratedAssets = field(default_factory=GeneratedAssets)
