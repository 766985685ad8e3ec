#!/usr/bin/env python
"""
Generate synthetic character samples for trying out the recognizer.

This script creates:
- A labeled generating set of rendered digits (one directory per label)
- Unlabeled character crops for bootstrap harvesting
- Line images of digit strings for decoding

Usage:
    python examples/generate_samples.py
    bookrec train --input samples/train --output samples/recog.json
    bookrec decode --recognizer samples/recog.json samples/lines/*.png
"""

import numpy as np
import json
from pathlib import Path

DIGITS = "0123456789"


def render_text(text, font=None, scale=1.0, thickness=2, noise=0.0, seed=0):
    """Render text in black on a white canvas cropped with a small margin."""
    import cv2

    if font is None:
        font = cv2.FONT_HERSHEY_SIMPLEX

    (w, h), baseline = cv2.getTextSize(text, font, scale, thickness)
    img = np.ones((h + baseline + 8, w + 8), dtype=np.uint8) * 255
    cv2.putText(img, text, (4, h + 4), font, scale, 0, thickness)

    if noise > 0:
        # Salt-and-pepper specks
        rng = np.random.default_rng(seed)
        flips = rng.random(img.shape) < noise
        img[flips] = 255 - img[flips]

    return img


def create_generating_set(output_dir, copies=4):
    """Render each digit with a few small variations."""
    import cv2

    variations = [
        (cv2.FONT_HERSHEY_SIMPLEX, 1.0, 2),
        (cv2.FONT_HERSHEY_SIMPLEX, 1.05, 2),
        (cv2.FONT_HERSHEY_SIMPLEX, 0.95, 2),
        (cv2.FONT_HERSHEY_SIMPLEX, 1.0, 3),
    ]

    count = 0
    for digit in DIGITS:
        label_dir = output_dir / digit
        label_dir.mkdir(parents=True, exist_ok=True)
        for i, (font, scale, thickness) in enumerate(variations[:copies]):
            img = render_text(digit, font, scale, thickness)
            cv2.imwrite(str(label_dir / f"{i:05d}.png"), img)
            count += 1
    return count


def create_unlabeled_set(output_dir, seed=42):
    """Slightly noisy digits without labels, plus a few non-digit marks."""
    import cv2

    output_dir.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(seed)

    count = 0
    for i in range(30):
        digit = DIGITS[int(rng.integers(len(DIGITS)))]
        img = render_text(digit, scale=float(rng.uniform(0.9, 1.1)), noise=0.01, seed=i)
        cv2.imwrite(str(output_dir / f"sample_{count:03d}.png"), img)
        count += 1

    for mark in ["#", "%", "&"]:
        cv2.imwrite(str(output_dir / f"sample_{count:03d}.png"), render_text(mark))
        count += 1
    return count


def create_lines(output_dir):
    """Digit strings such as page numbers and dates."""
    import cv2

    output_dir.mkdir(parents=True, exist_ok=True)
    texts = ["1066", "42", "2718", "31415", "907"]
    for i, text in enumerate(texts):
        cv2.imwrite(str(output_dir / f"line_{i:02d}.png"), render_text(text))
    return texts


def main():
    """Generate all sample sets."""
    output_dir = Path(__file__).parent.parent / "samples"
    output_dir.mkdir(exist_ok=True)

    print("Generating synthetic character samples...")

    n_train = create_generating_set(output_dir / "train")
    print(f"  Created: {n_train} labeled samples in {output_dir / 'train'}")

    n_unlabeled = create_unlabeled_set(output_dir / "unlabeled")
    print(f"  Created: {n_unlabeled} unlabeled samples in {output_dir / 'unlabeled'}")

    texts = create_lines(output_dir / "lines")
    print(f"  Created: {len(texts)} line images in {output_dir / 'lines'}")

    # Save expected text for each line
    ground_truth = {f"line_{i:02d}.png": text for i, text in enumerate(texts)}
    with open(output_dir / "lines" / "ground_truth.json", "w") as f:
        json.dump(ground_truth, f, indent=2)

    print(f"\nAll samples saved to: {output_dir}")
    print("\nTo train and decode, run:")
    print(f"  bookrec train --input {output_dir / 'train'} --output {output_dir / 'recog.json'} --min-samples 0")
    print(f"  bookrec decode --recognizer {output_dir / 'recog.json'} {output_dir / 'lines'}/*.png")


if __name__ == "__main__":
    main()
