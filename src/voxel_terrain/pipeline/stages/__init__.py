"""Built-in terrain generation stages."""

BUILTIN_STAGE_MODULES = (
    "noise_field",
    "worm_planner",
    "cave_carver",
    "terrain_composer",
    "voxel_mesher",
)

from . import noise_field, worm_planner, cave_carver, terrain_composer, voxel_mesher  # noqa: E402,F401

STAGE_NAMES = (
    noise_field.STAGE_NAME,
    worm_planner.STAGE_NAME,
    cave_carver.STAGE_NAME,
    terrain_composer.STAGE_NAME,
    voxel_mesher.STAGE_NAME,
)

__all__ = ["BUILTIN_STAGE_MODULES", "STAGE_NAMES"]
