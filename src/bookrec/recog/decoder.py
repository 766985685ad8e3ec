"""
Line decoding: segmentation and labeling of an unsegmented line image.

The decoder runs a dynamic program over column positions. State x means
"the first x columns are explained". From each state the line may either
skip one column or place one averaged template whose left edge is at x,
moving to x + template width. A placement gains

    score * window_fg

where score is the correlation of the template with the line inside its
columns and window_fg is the number of line foreground pixels in those
columns. Skipping a column costs `skip_penalty` per foreground pixel in it.
The best path ending at the last column is traced back and each of its
segments is then rescored with the store's full template set, keeping the
segment boundaries.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict
import numpy as np

from ..config import SplitConfig
from ..exceptions import EmptyBitmap
from .images import binarize
from .store import TemplateStore, BitmapExample
from .correlation import (
    CorrelationScorer, MatchResult, SequenceResult,
    overlap_count, correlation, shift_order, round_half_up, match_bitmap,
)

logger = logging.getLogger(__name__)

SKIP = -1


# ============================================================================
# Workspace
# ============================================================================

@dataclass
class DecodeWorkspace:
    """
    Scratch state of one decode call.

    A workspace is created by each call and never shared: its arrays are
    overwritten in place while the trellis is filled.
    """
    line: np.ndarray                      # binarized input
    prepared: np.ndarray                  # input in the store's representation
    ink: np.ndarray                       # foreground count per column of `line`
    column_sums: np.ndarray               # foreground count per column of `prepared`
    column_moments: np.ndarray            # sum of row indices per column of `prepared`
    templates: List[BitmapExample]        # averaged templates, prepared
    template_classes: List[int]
    counts: np.ndarray                    # (templates, width) best overlap, -1 = no placement
    shifts: np.ndarray                    # (templates, width) top row of best placement
    scores: np.ndarray                    # (templates, width) correlation of best placement
    trellis_score: np.ndarray             # (width + 1,) best total gain per state
    trellis_back: np.ndarray              # (width + 1, 3) previous state, template, top row
    initial_path: List[MatchResult] = field(default_factory=list)
    rescored_path: List[MatchResult] = field(default_factory=list)

    @property
    def width(self) -> int:
        return self.line.shape[1]

    @property
    def num_templates(self) -> int:
        return len(self.templates)

    def window_foreground(self, x: int, w: int) -> int:
        return int(self.column_sums[x:x + w].sum())


# ============================================================================
# Decoder
# ============================================================================

class LineDecoder:
    """
    Decodes a line image against a finalized store.

    Args:
        store: Finalized TemplateStore
        split: Segment size filters and trellis weights (defaults to the
            store's configuration)
        observer: Optional RecogObserver notified with each workspace
    """

    def __init__(
        self,
        store: TemplateStore,
        split: Optional[SplitConfig] = None,
        observer=None
    ):
        self.store = store
        self.split = split or store.config.split
        self.observer = observer
        self.scorer = CorrelationScorer(store.max_y_shift)

        # Prepared once; the store is read-only
        self._templates: List[BitmapExample] = []
        self._template_classes: List[int] = []
        for class_index, cls in enumerate(store.classes):
            prepared = store.representation.prepare(cls.averaged_unscaled.bitmap)
            self._templates.append(BitmapExample.from_bitmap(prepared))
            self._template_classes.append(class_index)

    def decode(self, line: np.ndarray) -> SequenceResult:
        result, _ = self.decode_with_workspace(line)
        return result

    def decode_with_workspace(self, line: np.ndarray) -> Tuple[SequenceResult, Optional[DecodeWorkspace]]:
        """
        Decode a line and return the workspace used, for diagnostics.

        A blank line, or a store without classes, gives an empty result
        and no workspace.
        """
        binary = binarize(np.asarray(line), self.store.threshold)
        if binary.size == 0 or not binary.any() or not self._templates:
            logger.debug("Nothing to decode")
            return SequenceResult(), None

        ws = self._make_workspace(binary)
        self._score_placements(ws)
        self._run_trellis(ws)
        ws.initial_path = self._backtrack(ws)
        ws.rescored_path = self._rescore(ws)

        if self.observer is not None:
            self.observer.on_line_decoded(ws)

        logger.debug(
            f"Decoded line of width {ws.width}: "
            f"{''.join(m.label for m in ws.rescored_path)!r}"
        )
        return SequenceResult(list(ws.rescored_path)), ws

    def _make_workspace(self, binary: np.ndarray) -> DecodeWorkspace:
        prepared = self.store.representation.prepare(binary)
        height, width = binary.shape
        rows = np.arange(height, dtype=np.int64)[:, None]
        n = len(self._templates)

        trellis_back = np.full((width + 1, 3), SKIP, dtype=np.int64)
        trellis_score = np.full(width + 1, -np.inf, dtype=np.float64)
        trellis_score[0] = 0.0

        return DecodeWorkspace(
            line=binary,
            prepared=prepared,
            ink=binary.sum(axis=0).astype(np.int64),
            column_sums=prepared.sum(axis=0).astype(np.int64),
            column_moments=(prepared * rows).sum(axis=0).astype(np.int64),
            templates=list(self._templates),
            template_classes=list(self._template_classes),
            counts=np.full((n, width), -1, dtype=np.int64),
            shifts=np.zeros((n, width), dtype=np.int64),
            scores=np.zeros((n, width), dtype=np.float64),
            trellis_score=trellis_score,
            trellis_back=trellis_back,
        )

    def _window_height(self, ws: DecodeWorkspace, x: int, w: int, cache: Dict[Tuple[int, int], int]) -> int:
        key = (x, w)
        if key not in cache:
            rows = np.flatnonzero(ws.line[:, x:x + w].any(axis=1))
            cache[key] = int(rows[-1] - rows[0] + 1) if len(rows) else 0
        return cache[key]

    def _score_placements(self, ws: DecodeWorkspace):
        """Fill counts/shifts/scores for every acceptable template placement."""
        split = self.split
        shifts = shift_order(self.store.max_y_shift)
        heights: Dict[Tuple[int, int], int] = {}

        for k, template in enumerate(ws.templates):
            w = template.width
            if w < split.min_split_width or template.count == 0:
                continue
            for x in range(ws.width - w + 1):
                # Segments start on ink
                if ws.ink[x] == 0:
                    continue
                window_fg = ws.window_foreground(x, w)
                if window_fg == 0:
                    continue
                h = self._window_height(ws, x, w, heights)
                if h < split.min_split_height or h > split.max_split_height:
                    continue

                moment = int(ws.column_moments[x:x + w].sum())
                top = round_half_up(moment / float(window_fg) - template.centroid[1])
                best_value, best_overlap, best_top = -1.0, 0, top
                for shift in shifts:
                    overlap = overlap_count(ws.prepared, template.bitmap, x, top + shift)
                    value = correlation(overlap, window_fg, template.count)
                    if value > best_value:
                        best_value, best_overlap, best_top = value, overlap, top + shift

                if best_value < split.min_placement_score:
                    continue
                ws.counts[k, x] = best_overlap
                ws.shifts[k, x] = best_top
                ws.scores[k, x] = best_value

    def _run_trellis(self, ws: DecodeWorkspace):
        """Forward pass; ties keep the transition found first."""
        score = ws.trellis_score
        back = ws.trellis_back
        penalty = self.split.skip_penalty
        widths = [t.width for t in ws.templates]

        for x in range(ws.width):
            if not np.isfinite(score[x]):
                continue

            candidate = score[x] - penalty * ws.ink[x]
            if candidate > score[x + 1]:
                score[x + 1] = candidate
                back[x + 1] = (x, SKIP, 0)

            for k in np.flatnonzero(ws.counts[:, x] >= 0):
                end = x + widths[k]
                gain = ws.scores[k, x] * ws.window_foreground(x, widths[k])
                candidate = score[x] + gain
                if candidate > score[end]:
                    score[end] = candidate
                    back[end] = (x, k, ws.shifts[k, x])

    def _backtrack(self, ws: DecodeWorkspace) -> List[MatchResult]:
        """Placements on the best path to the last column, left to right."""
        path = []
        state = ws.width
        if not np.isfinite(ws.trellis_score[state]):
            return path

        while state > 0:
            prev, k, top = (int(v) for v in ws.trellis_back[state])
            if prev < 0:
                # Unreachable state; no complete path
                return []
            if k != SKIP:
                class_index = ws.template_classes[k]
                path.append(MatchResult(
                    class_index=class_index,
                    score=float(ws.scores[k, prev]),
                    label=self.store.label_for_index(class_index),
                    example_index=-1,
                    x=prev,
                    y=top,
                    width=ws.templates[k].width,
                ))
            state = prev

        path.reverse()
        return path

    def _rescore(self, ws: DecodeWorkspace) -> List[MatchResult]:
        """Relabel each segment with the store's templates, keeping its bounds."""
        rescored = []
        for segment in ws.initial_path:
            window = ws.line[:, segment.x:segment.x + segment.width]
            try:
                match = match_bitmap(window, self.store, self.scorer)
            except EmptyBitmap:
                match = None
            if match is None:
                rescored.append(segment)
                continue
            rescored.append(MatchResult(
                class_index=match.class_index,
                score=match.score,
                label=match.label,
                example_index=match.example_index,
                x=segment.x,
                y=segment.y,
                width=segment.width,
            ))
        return rescored
