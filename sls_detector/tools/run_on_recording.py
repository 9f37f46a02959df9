from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path

import numpy as np

from sls_detector.core.config.settings import build_detector, load_settings
from sls_detector.core.sources.recording import load_recording


def _to_jsonable(obj):
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    return obj


def run(args):
    settings = load_settings()
    # Assignments are validated, so unknown names fail here.
    if args.preset:
        settings.preset = args.preset
    if args.shadow_extractor:
        settings.shadow_extractor = args.shadow_extractor
    detector = build_detector(settings)

    outputs = []
    for frame in load_recording(args.input):
        result = detector.process_frame(frame, profile=args.profile)
        outputs.append(_to_jsonable(result))
        if args.max_frames and len(outputs) >= args.max_frames:
            break
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(outputs, f, indent=2)
    total = sum(len(o["detections"]) for o in outputs)
    print(f"Wrote {len(outputs)} frame results ({total} detections) to {out_path}")
    return outputs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the depth anomaly detector on a recording")
    parser.add_argument("--input", required=True, help="Path to an .npz depth recording")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--preset", default=None, help="Threshold preset (sensitive|balanced|strict)")
    parser.add_argument(
        "--shadow-extractor", default=None, help="Silhouette extractor (none|depth_edges)"
    )
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument("--profile", action="store_true", help="Include per-stage timings")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(args)


if __name__ == "__main__":
    main()
