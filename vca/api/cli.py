"""
One-shot staging CLI.

Interface responsibilities:
- Load a product and a container from JSON files (validated with the same
  `pydantic` schemas as the HTTP API).
- Optionally pick a preset or custom scene, a lift override and a settings file.
- Run the base-asset generation, and the final scene when `--final` is given.
- Print geometry, prompt and resulting image reference.

Request lifecycle:
1. Parse arguments and configure logging (`LOG_LEVEL`, default INFO).
2. Build a `WorkflowStateMachine` backed by the JSON settings store.
3. Set product/container/scene/lift; print geometry and prompt.
4. `generate_preview()`; on `--final`, skip to REFINEMENT (runs the scene).
5. Print the result; exit code 1 when no usable image was produced.

Error handling strategy:
- Invalid JSON or schema errors abort with exit code 2 and a message.
- Provider failures are reported through notifications by the workflow.
"""

from dotenv import load_dotenv

load_dotenv()

import argparse
import asyncio
import json
import logging
import os
import sys

from pydantic import ValidationError

from vca.api.schemas import ContainerIn, ProductIn, SceneIn, scene_from_input
from vca.core.types import WorkflowStep
from vca.core.workflow import WorkflowStateMachine
from vca.settings.store import open_settings_store


def _args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Stage a plant in a container with a generative image model",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  vca-stage --product gum_tree.json --container white_pot.json\n"
            "  vca-stage --product p.json --container c.json --scene scene_loft --final\n"
        ),
    )
    p.add_argument("--product", required=True, help="product JSON file")
    p.add_argument("--container", required=True, help="container JSON file")
    p.add_argument("--scene", default=None, help="preset scene id or free-text scene")
    p.add_argument("--lift", type=float, default=None, help="lift override in cm (clamped)")
    p.add_argument("--template", default=None, help="prompt template file")
    p.add_argument("--settings", default=None, help="settings JSON file (VCA_SETTINGS_PATH)")
    p.add_argument("--final", action="store_true", help="also generate the final scene")
    return p.parse_args(argv)


def _load_json(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


async def run(args: argparse.Namespace) -> int:
    machine = WorkflowStateMachine(settings=open_settings_store(args.settings))

    machine.set_product(ProductIn(**_load_json(args.product)).to_spec())
    machine.set_container(ContainerIn(**_load_json(args.container)).to_spec())

    if args.scene:
        scene_input = SceneIn(preset_id=args.scene) if args.scene.startswith("scene_") else SceneIn(prompt=args.scene)
        machine.set_scene(scene_from_input(scene_input))

    if args.template:
        with open(args.template, "r", encoding="utf-8") as f:
            machine.set_prompt_template(f.read(), persist=False)

    if args.lift is not None:
        machine.set_custom_lift(machine.clamp_lift(args.lift))

    geometry = machine.session.geometry
    if geometry is not None:
        for message in geometry.messages:
            print(message)
    print("\nPrompt:\n")
    print(machine.active_prompt)
    print("\n" + "-" * 60)

    assets = await machine.generate_preview()
    base = assets.base_image
    if base is None or base.is_error:
        print("No base image produced.")
        return 1

    label = "fallback" if assets.is_fallback else (assets.model_used or "generated")
    print(f"base image ({label}) -> {base.uri[:120]}")

    if args.final:
        await machine.skip_to(WorkflowStep.REFINEMENT)
        if not assets.final_images:
            print("No final scene produced.")
            return 1
        print(f"final scene -> {assets.final_images[0].uri[:120]}")

    return 0


def main(argv=None) -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%H:%M:%S",
    )
    args = _args(argv)
    try:
        code = asyncio.run(run(args))
    except (OSError, json.JSONDecodeError, ValidationError, KeyError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
