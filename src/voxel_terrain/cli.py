"""Command-line entry point for terrain generation."""

from __future__ import annotations

import argparse
import json
import time
from pathlib import Path
from typing import Any, Dict, Sequence

import yaml

from voxel_terrain.pipeline import ExecutionEngine, PipelineConfig, ensure_builtin_stages


def load_config(path: str | None) -> Dict[str, Any]:
    if not path:
        return {}
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(config_path)
    with config_path.open("r", encoding="utf-8") as fh:
        if config_path.suffix.lower() == ".json":
            data = json.load(fh)
        else:
            data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        msg = f"Config must be a mapping, got {type(data).__name__}"
        raise ValueError(msg)
    return data


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Layer command-line flags over the file configuration."""
    merged = dict(config)
    geometry = dict(merged.get("geometry") or {})
    if args.seed is not None:
        geometry["seed"] = args.seed
    if args.side_chunks is not None:
        geometry["side_length_in_chunks"] = args.side_chunks
    merged["geometry"] = geometry
    if args.out is not None:
        merged["output_dir"] = args.out
    if args.run_id is not None:
        merged["run_id"] = args.run_id
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("voxel-terrain")
    parser.add_argument("--config", type=str, default=None, help="YAML or JSON config file")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--side-chunks", type=int, default=None, help="Terrain side length in chunks")
    parser.add_argument("--out", type=str, default=None, help="Output directory (default: out)")
    parser.add_argument("--run-id", type=str, default=None)
    parser.add_argument("--visuals", action="store_true", help="Write PNG previews for each stage")
    parser.add_argument("--refresh", action="store_true", help="Clear cached stage results first")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = PipelineConfig.from_mapping(apply_overrides(load_config(args.config), args))

    ensure_builtin_stages()
    t0 = time.time()
    engine = ExecutionEngine(config, generate_visuals=args.visuals)
    if args.refresh:
        engine.context.cache_manager.clear()
    results = engine.run()
    elapsed = time.time() - t0

    worms = results["worm_planner"].artifact("WormMetadata").value
    meshes = results["voxel_mesher"].artifact("MeshMetadata").value
    cache_hits = sum(1 for result in results.values() if result.stats and result.stats.cache_hit)
    print(
        f"Run {config.run_id}: {meshes['chunks']} chunks, {meshes['faces']} faces, "
        f"{worms['worms']} worms in {elapsed:.2f}s ({cache_hits}/{len(results)} stages cached)"
    )
    print(f"Datasets: {config.run_dataset_dir()}")
    print(f"Log: {config.run_log_path()}")


if __name__ == "__main__":
    main()
