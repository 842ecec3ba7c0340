"""Visual Commerce Agent workflow state machine.

Architectural role:
    Owns one `WorkflowSession` and sequences the staging steps in response to
    operator actions. Geometry (`vca.staging.height_validator`), prompt text
    (`vca.prompting.prompt_builder`) and provider calls
    (`vca.image.service.ImageGenerationDispatcher`) are delegated; this module
    only coordinates them and writes results back into the session.

Step order:
    INPUT -> POTTED_PLANT -> GENERATION_BASE -> GENERATION_SCENE -> REFINEMENT
    -> OUTPUT. Entering REFINEMENT runs the final scene generation, which always
    ends in OUTPUT.

Consistency invariant:
    Every setter touching product, container, scene, custom lift or template
    re-derives geometry and prompt text before returning.

Concurrency:
    At most one generation runs per session. The generation runs as an
    `asyncio` task so `stop_generation` can cancel it; provider polling stops
    at its next suspension point.

Error handling strategy:
    Provider failures never escape `generate_preview`/`generate_final_scene`.
    They become a fallback image, the `"error"` sentinel or an empty result set,
    plus a notification naming the failure category.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

import httpx

from vca.core.errors import NoResultReturned, SafetyBlocked, StagingError, ValidationRejected
from vca.core.notifications import ERROR, INFO, SUCCESS, WARNING, LoggingNotifier, Notifier
from vca.core.types import (
    STEP_ORDER,
    ContainerSpec,
    GeneratedAssets,
    GeometryResult,
    ModelIdentity,
    ProductSpec,
    SceneConfig,
    WorkflowSession,
    WorkflowStep,
)
from vca.image.reference import ImageReference
from vca.image.service import ImageGenerationDispatcher
from vca.prompting.prompt_builder import (
    DEFAULT_SCENE_TEXT,
    build_scene_prompt,
    build_session_prompt,
)
from vca.settings.provider_config import (
    DEFAULT_IMAGE_MODEL,
    KEY_IMAGE_MODEL,
    KEY_PROMPT_TEMPLATE,
    GenerationConfig,
    load_generation_config,
    model_display_name,
    resolve_setting,
)
from vca.settings.store import InMemorySettingsStore, SettingsStore
from vca.staging.height_validator import check_admission, clamp_lift, compute_geometry


logger = logging.getLogger(__name__)


class _GenerationStopped(Exception):
    """Raised internally when the operator cancelled the in-flight generation."""


class WorkflowStateMachine:
    """Session-scoped coordinator of the staging workflow.

    Args:
        settings: Key/value settings store (credentials, model, template).
        dispatcher: Provider dispatcher; a default one is created when omitted.
        notifier: Sink for transient notifications.
        config: Fixed generation config. When omitted a fresh snapshot is read
            from `settings` for every generation call.
    """

    def __init__(
        self,
        settings: SettingsStore | None = None,
        dispatcher: ImageGenerationDispatcher | None = None,
        notifier: Notifier | None = None,
        config: GenerationConfig | None = None,
    ) -> None:
        self.settings = settings if settings is not None else InMemorySettingsStore()
        self.dispatcher = dispatcher or ImageGenerationDispatcher()
        self.notifier = notifier or LoggingNotifier()
        self._fixed_config = config
        self.session = WorkflowSession()
        self._inflight: asyncio.Task | None = None
        self._stop_requested = False
        self._load_settings()

    def _load_settings(self) -> None:
        template = resolve_setting(self.settings, KEY_PROMPT_TEMPLATE)
        model_id = (
            self._fixed_config.model_id
            if self._fixed_config is not None
            else resolve_setting(self.settings, KEY_IMAGE_MODEL, DEFAULT_IMAGE_MODEL)
        )
        self.session.prompt_template = template or None
        self.session.selected_model_name = model_display_name(model_id)

    # =========================================================
    # DERIVED STATE
    # =========================================================

    @property
    def step(self) -> WorkflowStep:
        return self.session.current_step

    @property
    def assets(self) -> GeneratedAssets:
        return self.session.assets

    @property
    def is_generating(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def active_prompt(self) -> str:
        """Prompt sent to the provider: the explicit override or a fresh build."""
        return self.session.custom_prompt or self._build_prompt()

    @property
    def max_lift(self) -> float:
        product, container = self.session.product, self.session.container
        if container is None:
            return 0
        pot_height = (product.pot_height_cm or 0) if product is not None else 0
        return max(0, container.height_cm - pot_height)

    def clamp_lift(self, value: float) -> float:
        """Clamp an operator lift into `[0, max_lift]` for the current pair."""
        product, container = self.session.product, self.session.container
        if container is None:
            return max(0, value)
        pot_height = (product.pot_height_cm or 0) if product is not None else 0
        return clamp_lift(value, pot_height, container.height_cm)

    def _build_prompt(self) -> str:
        s = self.session
        return build_session_prompt(s.product, s.container, s.scene, s.custom_lift, s.prompt_template)

    def recalculate(self) -> GeometryResult | None:
        """Recompute staging geometry; cleared while product or container is missing."""
        product, container = self.session.product, self.session.container
        if product is None or container is None:
            self.session.geometry = None
            return None

        self.session.geometry = compute_geometry(
            product.height_cm,
            product.pot_height_cm or 0,
            container.height_cm,
            self.session.custom_lift,
        )
        return self.session.geometry

    def _refresh(self) -> None:
        self.recalculate()
        self.session.custom_prompt = self._build_prompt()

    # =========================================================
    # SETTERS
    # =========================================================

    def set_product(self, product: ProductSpec) -> None:
        self.session.product = product
        self._refresh()

    def set_container(self, container: ContainerSpec) -> None:
        self.session.container = container
        self._refresh()

    def set_scene(self, scene: SceneConfig) -> None:
        self.session.scene = scene
        self._refresh()

    def set_model(self, model: ModelIdentity) -> None:
        self.session.model = model
        self._refresh()

    def set_custom_lift(self, lift: float | None) -> None:
        """Store a raw lift override (`None` clears it). No clamping happens here."""
        self.session.custom_lift = lift
        self._refresh()

    def set_custom_prompt(self, prompt: str) -> None:
        self.session.custom_prompt = prompt

    def set_prompt_template(self, template: str, persist: bool = True) -> None:
        """Replace the template, optionally save it, and rebuild the prompt."""
        self.session.prompt_template = template or None
        if persist:
            self.settings.set(KEY_PROMPT_TEMPLATE, template or None)
        self._refresh()

    def reset_prompt_template(self) -> None:
        self.set_prompt_template("", persist=True)

    # =========================================================
    # NAVIGATION
    # =========================================================

    async def advance(self) -> WorkflowStep:
        """Move to the next step; no-op at OUTPUT."""
        index = self.step.index
        if index < len(STEP_ORDER) - 1:
            await self._enter(STEP_ORDER[index + 1])
        return self.step

    async def retreat(self) -> WorkflowStep:
        """Move to the previous step.

        Going back from GENERATION_BASE without a base image returns to INPUT,
        since the staging confirmation step was skipped.
        """
        index = self.step.index
        if index == 0:
            return self.step

        target = STEP_ORDER[index - 1]
        if self.step is WorkflowStep.GENERATION_BASE and self.assets.base_image is None:
            target = WorkflowStep.INPUT
        await self._enter(target)
        return self.step

    async def skip_to(self, step: WorkflowStep | str) -> WorkflowStep:
        """Jump to `step` unconditionally."""
        await self._enter(WorkflowStep(step))
        return self.step

    async def _enter(self, step: WorkflowStep) -> None:
        logger.debug("Workflow step %s -> %s", self.step.value, step.value)
        self.session.current_step = step
        if step is WorkflowStep.REFINEMENT:
            await self.generate_final_scene()

    # =========================================================
    # GENERATION
    # =========================================================

    def _generation_config(self) -> GenerationConfig:
        if self._fixed_config is not None:
            return self._fixed_config
        return load_generation_config(self.settings)

    async def _single_flight(self, work: Awaitable[Any]) -> Any:
        """Run `work` as the session's only in-flight generation task."""
        self._stop_requested = False
        task = asyncio.ensure_future(work)
        self._inflight = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._stop_requested:
                raise _GenerationStopped() from None
            raise
        finally:
            self._inflight = None
            self._stop_requested = False
            self.assets.is_loading = False

    async def _load_reference(self, source: str, label: str) -> bytes | None:
        try:
            return await self.dispatcher.fetch_reference(source)
        except (httpx.HTTPError, ValueError):
            logger.warning("Failed to load %s image %s", label, source, exc_info=True)
            return None

    async def _collect_reference_images(
        self, product: ProductSpec, container: ContainerSpec
    ) -> list[bytes]:
        images: list[bytes] = []

        if product.main_image:
            data = await self._load_reference(product.main_image, "product")
            if data is not None:
                images.append(data)
            else:
                self.notifier.notify(
                    "Product image could not be loaded. The model will guess the plant's look.",
                    WARNING,
                    6000,
                )

        if container.image_url:
            data = await self._load_reference(container.image_url, "container")
            if data is not None:
                images.append(data)

        return images

    async def _generate(
        self,
        prompt: str,
        config: GenerationConfig,
        product: ProductSpec,
        container: ContainerSpec,
        for_scene: bool = False,
    ) -> ImageReference:
        if for_scene:
            images = await self._scene_references(product, container)
        else:
            images = await self._collect_reference_images(product, container)
        logger.info("Generating with %d reference image(s)", len(images))
        result = await self.dispatcher.generate(prompt, images, config)
        if result is None:
            raise NoResultReturned(f"No image returned by {config.display_name}.")
        return result

    async def generate_preview(self, force_retry: bool = False) -> GeneratedAssets:
        """Generate the base asset (product planted in the container).

        Args:
            force_retry: Regenerate even when a base image already exists.

        Returns:
            The session's `GeneratedAssets` after the attempt.
        """
        product, container = self.session.product, self.session.container
        assets = self.assets
        if product is None or container is None:
            self.notifier.notify("Select a product and a container first.", WARNING)
            return assets

        try:
            check_admission(product.pot_height_cm or 0, container.height_cm)
        except ValidationRejected as exc:
            self.notifier.notify(str(exc), WARNING, 5000)
            return assets

        if not force_retry and assets.base_image is not None:
            return assets

        if self.is_generating:
            self.notifier.notify("A generation is already in progress.", INFO)
            return assets

        prompt = self.active_prompt
        config = self._generation_config()
        logger.info("Generating preview (force_retry=%s) with %s", force_retry, config.model_id)

        assets.is_loading = True
        assets.base_image = None

        try:
            result = await self._single_flight(
                self._generate(prompt, config, product, container)
            )
        except _GenerationStopped:
            logger.info("Preview generation cancelled by operator")
            return assets
        except StagingError as exc:
            self._apply_fallback(exc, product, container)
            return assets
        except Exception as exc:
            logger.exception("Preview generation failed unexpectedly")
            self._apply_fallback(exc, product, container)
            return assets

        assets.base_image = result
        assets.is_fallback = False
        assets.is_loading = False
        assets.model_used = config.display_name
        assets.history.push(result)
        self.notifier.notify("Preview generated successfully.", SUCCESS)
        return assets

    def _apply_fallback(
        self, exc: Exception, product: ProductSpec, container: ContainerSpec
    ) -> None:
        """Substitute a static reference image (or the error sentinel) for a failure."""
        assets = self.assets
        assets.is_loading = False
        category = getattr(exc, "category", "unexpected")
        logger.warning("Preview generation failed (%s): %s", category, exc)

        fallback = product.main_image or container.image_url
        if fallback:
            assets.base_image = ImageReference(fallback)
            assets.is_fallback = True
            self.notifier.notify(
                f"AI generation error ({category}): {exc} - displaying fallback.", ERROR
            )
            return

        assets.base_image = ImageReference.error()
        assets.is_fallback = False
        if isinstance(exc, SafetyBlocked):
            self.notifier.notify(f"AI safety block: {exc}", ERROR)
        else:
            self.notifier.notify(f"AI generation failed ({category}): {exc}", ERROR)

    async def _scene_references(
        self, product: ProductSpec, container: ContainerSpec
    ) -> list[bytes]:
        """Prefer the generated base asset; fall back to the raw product photos."""
        base = self.assets.base_image
        if base is not None and not base.is_error and not self.assets.is_fallback:
            data = await self._load_reference(base.uri, "base")
            if data is not None:
                return [data]
        return await self._collect_reference_images(product, container)

    async def generate_final_scene(self) -> list[ImageReference]:
        """Composite the staged product into its scene and move to OUTPUT.

        Failures leave `final_images` empty; the step still becomes OUTPUT.
        A refused call keeps the previous final images.
        """
        product, container = self.session.product, self.session.container
        assets = self.assets

        if product is None or container is None:
            self.notifier.notify("Select a product and a container first.", WARNING)
            self.session.current_step = WorkflowStep.OUTPUT
            return list(assets.final_images)

        if self.is_generating:
            self.notifier.notify("A generation is already in progress.", INFO)
            self.session.current_step = WorkflowStep.OUTPUT
            return list(assets.final_images)

        scene_text = self.session.scene.prompt_template if self.session.scene else ""
        prompt = build_scene_prompt(
            self.active_prompt, scene_text or DEFAULT_SCENE_TEXT, self.session.prompt_template
        )
        config = self._generation_config()
        logger.info("Generating final scene with %s", config.model_id)
        assets.final_images = []
        assets.is_loading = True

        try:
            result = await self._single_flight(
                self._generate(prompt, config, product, container, for_scene=True)
            )
        except _GenerationStopped:
            logger.info("Final scene generation cancelled by operator")
            result = None
        except StagingError as exc:
            logger.warning("Final scene generation failed (%s): %s", exc.category, exc)
            self.notifier.notify(f"Scene generation failed ({exc.category}): {exc}", ERROR)
            result = None
        except Exception as exc:
            logger.exception("Final scene generation failed unexpectedly")
            self.notifier.notify(f"Scene generation failed: {exc}", ERROR)
            result = None

        assets.is_loading = False
        if result is not None:
            assets.final_images = [result]
            assets.scene_images.append(result)
            assets.model_used = config.display_name
            self.notifier.notify("Scene generated successfully.", SUCCESS)

        self.session.current_step = WorkflowStep.OUTPUT
        return list(assets.final_images)

    def stop_generation(self) -> bool:
        """Clear the loading flag and cancel the in-flight generation, if any.

        Returns:
            True when a running generation was cancelled.
        """
        self.assets.is_loading = False
        cancelled = False
        task = self._inflight
        if task is not None and not task.done():
            self._stop_requested = True
            task.cancel()
            cancelled = True
        self.notifier.notify("Generation stopped by user.", INFO)
        return cancelled

    # =========================================================
    # HISTORY
    # =========================================================

    def delete_history_item(self, index: int) -> ImageReference:
        """Remove one history entry. The displayed image is left untouched.

        Raises:
            IndexError: When `index` is out of range.
        """
        return self.assets.history.delete_at(index)

    def select_history_image(self, image: ImageReference | str) -> None:
        """Display `image` as the current base asset."""
        reference = ImageReference.coerce(image)
        self.assets.base_image = reference
        if reference in self.assets.history:
            self.assets.is_fallback = False

    # =========================================================
    # SNAPSHOT
    # =========================================================

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe view of the session for adapters."""
        s = self.session
        a = s.assets
        geometry = None
        if s.geometry is not None:
            geometry = {
                "lift_height": s.geometry.lift_height,
                "visual_total_height": s.geometry.visual_total_height,
                "is_valid": s.geometry.is_valid,
                "messages": list(s.geometry.messages),
            }

        return {
            "current_step": s.current_step.value,
            "display_stage": s.current_step.display_stage.value,
            "product_id": s.product.id if s.product else None,
            "container_id": s.container.id if s.container else None,
            "scene_id": s.scene.id if s.scene else None,
            "model_name": s.model.name if s.model else None,
            "custom_lift": s.custom_lift,
            "max_lift": self.max_lift,
            "prompt": self.active_prompt,
            "prompt_template": s.prompt_template,
            "selected_model_name": s.selected_model_name,
            "geometry": geometry,
            "assets": {
                "base_image": a.base_image.uri if a.base_image else None,
                "base_image_kind": a.base_image.kind.value if a.base_image else None,
                "is_fallback": a.is_fallback,
                "is_loading": a.is_loading,
                "model_used": a.model_used,
                "history": [item.uri for item in a.history],
                "scene_images": [item.uri for item in a.scene_images],
                "final_images": [item.uri for item in a.final_images],
            },
        }
