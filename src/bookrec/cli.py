#!/usr/bin/env python
"""
Command-line interface for the book-adapted character recognizer.

Usage:
    bookrec <command> [options]

Examples:
    # Train from a directory with one subdirectory per label
    bookrec train --input ./samples --output recog.json

    # Identify single characters
    bookrec identify --recognizer recog.json char1.png char2.png

    # Decode a line of characters
    bookrec decode --recognizer recog.json line.png

    # Bootstrap a new generating set with a generic recognizer
    bookrec harvest --recognizer generic.json --input ./unlabeled --output ./harvested
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from . import __version__

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("bookrec")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="bookrec",
        description="Book-adapted character recognizer - train, identify and decode by template correlation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Train and save a recognizer:
    bookrec train --input ./samples --output recog.json --scale-height 40

  Remove mislabeled samples from a generating set:
    bookrec outliers --recognizer recog.json --cleaned ./cleaned

  Evaluate on held-out samples:
    bookrec evaluate --recognizer recog.json --input ./test --report report.json
        """
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-error output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command", metavar="command")
    commands.required = True

    # train
    train = commands.add_parser("train", help="Train a recognizer from labeled samples")
    train.add_argument("--input", "-i", required=True, help="Directory of labeled samples")
    train.add_argument("--output", "-o", required=True, help="Output recognizer JSON")
    train.add_argument("--pattern", default="*.png", help="File pattern (default: *.png)")
    train.add_argument("--scale-width", type=int, default=None, help="Template width, 0 = unscaled (default: 0)")
    train.add_argument("--scale-height", type=int, default=None,
                       help="Template height, 0 = unscaled (default: 40, or BOOKREC_SCALE_HEIGHT)")
    train.add_argument("--outline", action="store_true", help="Match thinned-and-dilated outlines")
    train.add_argument("--average-only", action="store_true", help="Match averaged templates only")
    train.add_argument("--threshold", type=int, default=None, help="Binarization threshold (default: 150)")
    train.add_argument("--max-y-shift", type=int, default=None,
                       help="Vertical alignment search (default: 1, or BOOKREC_MAX_Y_SHIFT)")
    train.add_argument("--boot-dir", default=None,
                       help="Labeled samples used for padding sparse labels (default: BOOKREC_BOOT_DIR)")
    train.add_argument("--min-samples", type=int, default=None,
                       help="Pad from --boot-dir when fewer samples are given (default: 10)")

    # identify
    identify = commands.add_parser("identify", help="Identify single-character images")
    identify.add_argument("--recognizer", "-r", required=True, help="Recognizer JSON")
    identify.add_argument("images", nargs="+", help="Character images")

    # decode
    decode = commands.add_parser("decode", help="Decode line images")
    decode.add_argument("--recognizer", "-r", required=True, help="Recognizer JSON")
    decode.add_argument("--min-split-width", type=int, default=None)
    decode.add_argument("--min-split-height", type=int, default=None)
    decode.add_argument("--max-split-height", type=int, default=None)
    decode.add_argument("--json", dest="as_json", action="store_true", help="Print matches as JSON")
    decode.add_argument("images", nargs="+", help="Line images")

    # outliers
    outliers = commands.add_parser("outliers", help="Find mislabeled samples")
    outliers.add_argument("--recognizer", "-r", required=True, help="Recognizer JSON")
    outliers.add_argument("--cleaned", default=None, help="Write the generating set without outliers here")
    outliers.add_argument("--report", default=None, help="Write per-sample scores as JSON")

    # harvest
    harvest = commands.add_parser("harvest", help="Label samples with a donor recognizer")
    harvest.add_argument("--recognizer", "-r", required=True, help="Donor recognizer JSON")
    harvest.add_argument("--input", "-i", required=True, help="Directory of unlabeled samples")
    harvest.add_argument("--output", "-o", required=True, help="Output generating-set directory")
    harvest.add_argument("--pattern", default="*.png", help="File pattern (default: *.png)")
    harvest.add_argument("--min-score", type=float, default=None,
                         help="Minimum correlation score to accept a sample "
                              "(default: 0.75, or BOOKREC_MIN_SCORE)")

    # evaluate
    evaluate = commands.add_parser("evaluate", help="Measure accuracy on labeled samples")
    evaluate.add_argument("--recognizer", "-r", required=True, help="Recognizer JSON")
    evaluate.add_argument("--input", "-i", required=True, help="Directory of labeled samples")
    evaluate.add_argument("--pattern", default="*.png", help="File pattern (default: *.png)")
    evaluate.add_argument("--report", default=None, help="Output path for the report JSON")

    return parser


def build_config(args):
    """RecogConfig from the environment, overridden by the given training arguments."""
    from .config import get_config, TemplateKind, TemplateUsage

    config = get_config()
    for name in ("scale_width", "scale_height", "threshold", "max_y_shift"):
        if getattr(args, name) is not None:
            setattr(config.template, name, getattr(args, name))
    if args.outline:
        config.template.template_kind = TemplateKind.OUTLINE
    if args.average_only:
        config.template.template_usage = TemplateUsage.AVERAGE
    if args.boot_dir is not None:
        config.bootstrap.boot_dir = args.boot_dir
    if args.min_samples is not None:
        config.bootstrap.min_samples = args.min_samples
    return config.validate()


def cmd_train(args) -> int:
    from .recog.io import load_labeled_bitmaps
    from .recog.bootstrap import needs_bootstrap, pad_generating_set
    from .recog.recognizer import Recognizer

    config = build_config(args)
    threshold = config.template.threshold
    pairs = load_labeled_bitmaps(args.input, args.pattern, threshold)
    if not pairs:
        logger.error(f"No samples found in {args.input}")
        return 1

    if needs_bootstrap(pairs, config.bootstrap.min_samples):
        if config.bootstrap.boot_dir:
            padding = load_labeled_bitmaps(
                config.bootstrap.boot_dir, config.bootstrap.boot_pattern, threshold
            )
            pairs = pad_generating_set(pairs, padding, config.bootstrap, config.template.threshold)
        else:
            logger.warning(
                f"Only {len(pairs)} samples (< {config.bootstrap.min_samples}) and no --boot-dir"
            )

    recognizer = Recognizer.from_generating_set(pairs, config)
    recognizer.save(args.output)

    if not args.quiet:
        print(f"Trained {recognizer.num_classes} classes from {recognizer.num_samples} samples")
        print(f"Saved: {args.output}")
    return 0


def cmd_identify(args) -> int:
    from .recog.io import load_bitmap
    from .recog.recognizer import Recognizer

    recognizer = Recognizer.load(args.recognizer)
    for path in args.images:
        match = recognizer.identify(load_bitmap(path, recognizer.store.threshold))
        print(f"{path}\t{match.label}\t{match.score:.3f}")
    return 0


def cmd_decode(args) -> int:
    import json
    from dataclasses import replace
    from .recog.io import load_bitmap
    from .recog.recognizer import Recognizer

    recognizer = Recognizer.load(args.recognizer)
    split = recognizer.store.config.split
    overrides = {
        name: getattr(args, name)
        for name in ("min_split_width", "min_split_height", "max_split_height")
        if getattr(args, name) is not None
    }
    split = replace(split, **overrides) if overrides else None

    for path in args.images:
        result = recognizer.identify_line(load_bitmap(path, recognizer.store.threshold), split)
        if args.as_json:
            print(json.dumps({"image": path, **result.to_dict()}, ensure_ascii=False))
        else:
            print(f"{path}\t{result.text}")
    return 0


def cmd_outliers(args) -> int:
    from .recog.io import save_generating_set, save_json
    from .recog.recognizer import Recognizer

    recognizer = Recognizer.load(args.recognizer)
    scores = recognizer.score_outliers()
    flagged = [s for s in scores if s.is_outlier]

    if args.report:
        save_json([s.to_dict() for s in scores], args.report)
    if args.cleaned:
        save_generating_set(recognizer.remove_outliers(), args.cleaned)

    if not args.quiet:
        for s in flagged:
            print(f"class {s.class_index} ({s.label!r}) example {s.example_index}: "
                  f"best {s.best_label!r} {s.best_score:.3f} vs own {s.own_score:.3f}")
        print(f"{len(flagged)} outliers among {len(scores)} samples")
    return 0


def cmd_harvest(args) -> int:
    from .recog.io import load_images_from_folder, save_generating_set
    from .config import get_config
    from .recog.bootstrap import BootstrapHarvester
    from .recog.recognizer import Recognizer

    donor = Recognizer.load(args.recognizer)
    images = [
        image for _, image
        in load_images_from_folder(args.input, args.pattern, threshold=donor.store.threshold)
    ]
    min_score = args.min_score
    if min_score is None:
        min_score = get_config().bootstrap.min_score
    harvester = BootstrapHarvester(donor.store, min_score)
    pairs = harvester.harvest(images)
    save_generating_set(pairs, args.output)

    if not args.quiet:
        print(f"Accepted {len(pairs)} of {len(images)} samples -> {args.output}")
    return 0


def cmd_evaluate(args) -> int:
    from .recog.io import load_labeled_bitmaps
    from .recog.recognizer import Recognizer
    from .evaluate import evaluate_samples, print_metrics, save_report

    recognizer = Recognizer.load(args.recognizer)
    pairs = load_labeled_bitmaps(args.input, args.pattern, recognizer.store.threshold)
    metrics = evaluate_samples(recognizer, pairs)
    if args.report:
        save_report(metrics, args.report)
    if not args.quiet:
        print_metrics(metrics, str(args.input))
    return 0


COMMANDS = {
    "train": cmd_train,
    "identify": cmd_identify,
    "decode": cmd_decode,
    "outliers": cmd_outliers,
    "harvest": cmd_harvest,
    "evaluate": cmd_evaluate,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    from .config import get_config
    from .exceptions import RecogError

    parser = setup_argparser()
    args = parser.parse_args(argv)

    try:
        debug_mode = get_config().debug_mode
    except RecogError as e:
        logger.error(f"Invalid environment configuration: {e}")
        return 1

    # Configure logging level
    if args.verbose or debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    start_time = time.time()
    try:
        exit_code = COMMANDS[args.command](args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (RecogError, FileNotFoundError, NotADirectoryError) as e:
        logger.error(f"{args.command} failed: {e}")
        if args.verbose:
            raise
        return 1

    logger.debug(f"{args.command} finished in {time.time() - start_time:.2f}s")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
