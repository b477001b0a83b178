import argparse
import json
import sys

from lapse.config import AppConfig
from lapse.diagnostics import print_env_diagnostics
from lapse.errors import GenerationError, UnsupportedPlatformError
from lapse.pipeline import download_artifact, fallback_request, generate_video
from lapse.runtime import OpenCVRuntime
from lapse.stats import Timer
from lapse.types import GenerationOptions


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render ordered frames (+ optional music) into a timelapse video.")
    parser.add_argument("frames", nargs="+", help="frame URLs or paths, in display order")
    parser.add_argument("--duration", type=float, required=True, help="target duration in seconds")
    parser.add_argument("--music", default=None, help="background music URL or path")
    parser.add_argument("--volume", type=float, default=None, help="music volume 0-1 (default 0.5)")
    parser.add_argument("--out", default=None, help="output file name")
    parser.add_argument("--realtime", action="store_true", help="pace draws on the wall clock")
    parser.add_argument("--quiet", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    cfg = AppConfig.default()
    cfg.verbose = not args.quiet
    cfg.video.realtime = args.realtime
    if args.out:
        cfg.paths.out_path = args.out
    cfg.apply_env()
    cfg.validate()

    runtime = OpenCVRuntime(cfg)
    print_env_diagnostics(cfg, runtime)

    options = GenerationOptions(music_url=args.music, music_volume=args.volume)
    try:
        with Timer("video render", verbose=cfg.verbose):
            artifact = generate_video(args.frames, args.duration, options, cfg=cfg, runtime=runtime)
    except UnsupportedPlatformError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        print(f"   fallback payload: {json.dumps(fallback_request(args.frames, args.duration))}", file=sys.stderr)
        return 2
    except GenerationError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    out = download_artifact(artifact, cfg.paths.out_path, cfg.paths.download_dir)
    print(f"✅ FINAL OK → {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
