"""
I/O utilities for the recognizer.

Handles:
- Image loading and labeled sample directories
- Writing generating sets back to disk
- JSON serialization
- Persisting and restoring template stores
"""

import base64
import binascii
import json
import logging
import re
from pathlib import Path
from typing import List, Union, Optional, Any, Dict, Tuple, Sequence
from dataclasses import asdict

import numpy as np

from ..config import RecogConfig, RECOG_VERSION
from ..exceptions import MalformedPersistedData, InvalidConfiguration
from .images import binarize, clip_to_foreground, foreground_count
from .store import BitmapExample, CharacterClass, TemplateStore, make_representation, scale_for_matching

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.pbm', '.pgm')


# ============================================================================
# Image Loading
# ============================================================================

def load_image(
    image_path: Union[str, Path],
    grayscale: bool = True
) -> np.ndarray:
    """
    Load an image from file.

    Args:
        image_path: Path to the image file
        grayscale: If True, load as grayscale

    Returns:
        Numpy array representing the image (BGR format if color)

    Raises:
        FileNotFoundError: If image file doesn't exist
        ValueError: If image cannot be decoded
    """
    import cv2

    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    flag = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_COLOR
    img = cv2.imread(str(image_path), flag)

    if img is None:
        raise ValueError(f"Could not decode image: {image_path}")

    logger.debug(f"Loaded image: {image_path}, shape: {img.shape}")
    return img


def load_bitmap(image_path: Union[str, Path], threshold: int = 150) -> np.ndarray:
    """Load a scan and binarize it as gray levels, even when it only holds 0 and 1."""
    return binarize(load_image(image_path), threshold, binary=False)


def save_image(bitmap: np.ndarray, output_path: Union[str, Path]) -> Path:
    """
    Save a bitmap as black ink on white paper.

    Args:
        bitmap: 0/1 bitmap (or an 8-bit image, written as is)
        output_path: Path to save the image

    Returns:
        Path to the saved image
    """
    import cv2

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if bitmap.dtype == bool or (bitmap.size and int(bitmap.max()) <= 1):
        image = np.where(bitmap > 0, 0, 255).astype(np.uint8)
    else:
        image = bitmap
    cv2.imwrite(str(output_path), image)

    logger.debug(f"Saved image: {output_path}")
    return output_path


def load_images_from_folder(
    folder_path: Union[str, Path],
    pattern: str = "*",
    sort: bool = True,
    threshold: Optional[int] = None
) -> List[Tuple[Path, np.ndarray]]:
    """
    Load all images from a folder.

    Args:
        folder_path: Path to the folder containing images
        pattern: Glob pattern for file names
        sort: If True, sort files alphabetically
        threshold: If given, binarize each scan with it (see load_bitmap)

    Returns:
        List of (path, grayscale image or 0/1 bitmap)
    """
    folder_path = Path(folder_path)
    if not folder_path.is_dir():
        raise NotADirectoryError(f"Not a directory: {folder_path}")

    image_files = [
        f for f in folder_path.glob(pattern)
        if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
    ]
    if sort:
        image_files = sorted(image_files)

    logger.info(f"Found {len(image_files)} images in {folder_path}")

    images = []
    for img_path in image_files:
        try:
            if threshold is None:
                images.append((img_path, load_image(img_path)))
            else:
                images.append((img_path, load_bitmap(img_path, threshold)))
        except (ValueError, OSError) as e:
            logger.warning(f"Failed to load {img_path}: {e}")

    return images


# ============================================================================
# Labeled Sample Directories
# ============================================================================

_CODEPOINT_RE = re.compile(r"^U\+[0-9A-F]{4,6}(?:_U\+[0-9A-F]{4,6})*$")


def label_to_dirname(label: str) -> str:
    """Directory name for a label; labels that aren't plain alphanumerics use U+XXXX."""
    if label and label.isascii() and label.isalnum():
        return label
    return "_".join(f"U+{ord(c):04X}" for c in label)


def dirname_to_label(name: str) -> str:
    if _CODEPOINT_RE.match(name):
        return "".join(chr(int(part[2:], 16)) for part in name.split("_"))
    return name


def load_labeled_bitmaps(
    directory: Union[str, Path],
    pattern: str = "*.png",
    threshold: Optional[int] = None
) -> List[Tuple[str, np.ndarray]]:
    """
    Load a generating set from disk.

    Two layouts are accepted: one subdirectory per label (label taken from
    the directory name), or flat files named `<label>_<anything>.<ext>`.

    Args:
        directory: Root directory
        pattern: Glob pattern for image files
        threshold: If given, binarize each scan with it (see load_bitmap)

    Returns:
        List of (label, grayscale image or 0/1 bitmap)
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")

    pairs = []
    subdirs = sorted(p for p in directory.iterdir() if p.is_dir())
    if subdirs:
        for subdir in subdirs:
            label = dirname_to_label(subdir.name)
            for _, image in load_images_from_folder(subdir, pattern, threshold=threshold):
                pairs.append((label, image))
    else:
        for path, image in load_images_from_folder(directory, pattern, threshold=threshold):
            label = dirname_to_label(path.stem.split("_")[0])
            pairs.append((label, image))

    logger.info(f"Loaded {len(pairs)} labeled samples from {directory}")
    return pairs


def save_generating_set(
    pairs: Sequence[Tuple[str, np.ndarray]],
    directory: Union[str, Path]
) -> Path:
    """Write (label, bitmap) pairs as `<directory>/<label>/<n>.png`."""
    directory = ensure_dir(directory)
    counters: Dict[str, int] = {}
    for label, bitmap in pairs:
        n = counters.get(label, 0)
        counters[label] = n + 1
        save_image(np.asarray(bitmap), directory / label_to_dirname(label) / f"{n:05d}.png")

    logger.info(f"Saved {len(pairs)} samples in {len(counters)} labels to {directory}")
    return directory


# ============================================================================
# JSON Serialization
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy arrays and dataclasses."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if hasattr(obj, '__dataclass_fields__'):
            return asdict(obj)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(
    data: Any,
    output_path: Union[str, Path],
    indent: Optional[int] = 2,
    ensure_ascii: bool = False
) -> Path:
    """
    Save data to a JSON file.

    Args:
        data: Data to serialize (dict, list, dataclass, etc.)
        output_path: Path to save the JSON file
        indent: Indentation level for pretty printing
        ensure_ascii: If True, escape non-ASCII characters

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii, cls=EnhancedJSONEncoder)

    logger.debug(f"Saved JSON: {output_path}")
    return output_path


def load_json(json_path: Union[str, Path]) -> Any:
    """
    Load data from a JSON file.

    Args:
        json_path: Path to the JSON file

    Returns:
        Parsed JSON data
    """
    json_path = Path(json_path)
    if not json_path.exists():
        raise FileNotFoundError(f"JSON file not found: {json_path}")

    with open(json_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory

    Returns:
        Path object for the directory
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


# ============================================================================
# Store Persistence
# ============================================================================

def encode_bitmap(bitmap: np.ndarray) -> Dict[str, Any]:
    h, w = bitmap.shape[:2]
    packed = np.packbits((np.asarray(bitmap) > 0).astype(np.uint8).ravel())
    return {"width": w, "height": h, "bits": base64.b64encode(packed.tobytes()).decode("ascii")}


def decode_bitmap(record: Dict[str, Any]) -> np.ndarray:
    try:
        w, h = int(record["width"]), int(record["height"])
        raw = base64.b64decode(record["bits"], validate=True)
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise MalformedPersistedData(f"Bad bitmap record: {e}")
    if w < 0 or h < 0:
        raise MalformedPersistedData(f"Bad bitmap size {w}x{h}")
    if len(raw) != (w * h + 7) // 8:
        raise MalformedPersistedData(f"Bitmap {w}x{h} has {len(raw)} bytes")
    bits = np.unpackbits(np.frombuffer(raw, dtype=np.uint8))[:w * h]
    return bits.reshape(h, w).astype(np.uint8)


def _encode_template(example: BitmapExample) -> Dict[str, Any]:
    return {
        "bitmap": encode_bitmap(example.bitmap),
        "centroid": [example.centroid[0], example.centroid[1]],
        "count": example.count,
    }


def _decode_template(record: Dict[str, Any]) -> BitmapExample:
    try:
        bitmap = decode_bitmap(record["bitmap"])
        cx, cy = (float(v) for v in record["centroid"])
        count = int(record["count"])
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedPersistedData(f"Bad template record: {e}")
    if count != foreground_count(bitmap):
        raise MalformedPersistedData(
            f"Template count {count} disagrees with its bitmap ({foreground_count(bitmap)})"
        )
    bitmap.setflags(write=False)
    return BitmapExample(bitmap=bitmap, centroid=(cx, cy), count=count)


def _decode_example(record: Dict[str, Any], class_index: int, example_index: int) -> BitmapExample:
    """Stored examples are non-empty and clipped, as the trainer makes them."""
    bitmap = decode_bitmap(record)
    if not bitmap.any():
        raise MalformedPersistedData(f"Class {class_index}: example {example_index} is blank")
    if clip_to_foreground(bitmap)[0].shape != bitmap.shape:
        raise MalformedPersistedData(
            f"Class {class_index}: example {example_index} is not clipped to its foreground"
        )
    return BitmapExample.from_bitmap(bitmap)


def store_to_dict(store: TemplateStore) -> Dict[str, Any]:
    """Serializable form of a store."""
    return {
        "version": RECOG_VERSION,
        "config": store.config.to_dict(),
        "classes": [
            {
                "label": cls.label,
                "tochar": store.char_code(index),
                "examples": [encode_bitmap(ex.bitmap) for ex in cls.unscaled_examples],
                "averaged_unscaled": _encode_template(cls.averaged_unscaled),
                "averaged_scaled": _encode_template(cls.averaged_scaled),
            }
            for index, cls in enumerate(store.classes)
        ],
    }


def store_from_dict(data: Dict[str, Any]) -> TemplateStore:
    """
    Rebuild a finalized store.

    Scaled examples are re-derived from the unscaled ones; averaged
    templates are restored as stored, without re-averaging.

    Raises:
        MalformedPersistedData: If the record is inconsistent or truncated
    """
    if not isinstance(data, dict):
        raise MalformedPersistedData("Store record is not an object")
    version = data.get("version")
    if version != RECOG_VERSION:
        raise MalformedPersistedData(f"Unsupported version {version!r} (expected {RECOG_VERSION})")
    if "config" not in data or "classes" not in data:
        raise MalformedPersistedData("Store record is missing 'config' or 'classes'")
    if not isinstance(data["config"], dict):
        raise MalformedPersistedData("'config' is not an object")
    if not isinstance(data["classes"], list):
        raise MalformedPersistedData("'classes' is not a list")

    try:
        config = RecogConfig.from_dict(data["config"])
    except InvalidConfiguration as e:
        raise MalformedPersistedData(f"Bad configuration: {e}")
    representation = make_representation(config)

    classes = []
    for index, record in enumerate(data["classes"]):
        if not isinstance(record, dict):
            raise MalformedPersistedData(f"Class {index}: record is not an object")
        try:
            label = record["label"]
            examples = record["examples"]
            averaged_unscaled = _decode_template(record["averaged_unscaled"])
            averaged_scaled = _decode_template(record["averaged_scaled"])
        except (KeyError, TypeError) as e:
            raise MalformedPersistedData(f"Class {index}: missing field {e}")
        if not isinstance(label, str) or not isinstance(examples, list) or not examples:
            raise MalformedPersistedData(f"Class {index}: bad label or no examples")

        unscaled = [_decode_example(ex, index, n) for n, ex in enumerate(examples)]
        scaled = [
            BitmapExample.from_bitmap(scale_for_matching(ex.bitmap, config, representation))
            for ex in unscaled
        ]
        classes.append(CharacterClass(
            label=label,
            unscaled_examples=tuple(unscaled),
            scaled_examples=tuple(scaled),
            averaged_unscaled=averaged_unscaled,
            averaged_scaled=averaged_scaled,
        ))

    store = TemplateStore(config, classes)
    for index, record in enumerate(data["classes"]):
        if record.get("tochar", store.char_code(index)) != store.char_code(index):
            raise MalformedPersistedData(f"Class {index}: char code disagrees with label")
    return store


def save_store(store: TemplateStore, output_path: Union[str, Path]) -> Path:
    path = save_json(store_to_dict(store), output_path, indent=None)
    logger.info(f"Saved recognizer ({store.num_classes} classes) to {path}")
    return path


def load_store(json_path: Union[str, Path]) -> TemplateStore:
    try:
        data = load_json(json_path)
    except json.JSONDecodeError as e:
        raise MalformedPersistedData(f"Invalid JSON in {json_path}: {e}")
    store = store_from_dict(data)
    logger.info(f"Loaded recognizer ({store.num_classes} classes) from {json_path}")
    return store
