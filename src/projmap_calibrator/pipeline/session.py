"""Calibration session state machine.

Sequences white/black references and the Gray code schedule for one
projector at a time, buffers the captured frames, decodes them once the
set is complete and fits the camera-to-projector homography.  Only the
capturing state talks to the outside world; every other state is pure
computation over frames already buffered.

States are small frozen dataclasses joined in the ``CalibrationState``
union, so each state carries exactly its own payload.  All transitions
happen on the thread that drives the session.  With
``background_homography`` enabled, fits run on a worker thread and
their results are collected by the driving thread on the next step.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Sequence, Union

import numpy as np

from projmap_calibrator.cameras.base import Camera
from projmap_calibrator.config.schema import ProjectorConfig, SessionConfig
from projmap_calibrator.display.base import PatternDisplay
from projmap_calibrator.errors import (
    CalibrationError,
    CaptureTimeout,
    FailureReason,
    InvalidConfiguration,
)
from projmap_calibrator.mapping.decoder import (
    CapturedPair,
    DecodedCorrespondences,
    Decoder,
)
from projmap_calibrator.mapping.homography import (
    HomographyComputer,
    HomographyResult,
)
from projmap_calibrator.mapping.structured_light import (
    PatternConfig,
    PatternGenerator,
    PatternSpec,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    """Nothing in progress."""


@dataclass(frozen=True)
class Capturing:
    """Waiting for frame ``pattern_index`` of projector ``projector_index``.

    Index 0 is the white reference, 1 the black reference, and the
    Gray code sequence follows.
    """

    projector_index: int
    pattern_index: int


@dataclass(frozen=True)
class Decoding:
    projector_index: int


@dataclass(frozen=True)
class ComputingHomography:
    projector_index: int


@dataclass(frozen=True)
class Complete:
    """Every projector is calibrated."""


@dataclass(frozen=True)
class Failed:
    """Automatic progression halted.

    Attributes:
        reason: Machine-readable failure category.
        message: Human-readable detail.
        projector_index: Projector that failed, if any.
    """

    reason: FailureReason
    message: str
    projector_index: int | None = None


CalibrationState = Union[
    Idle, Capturing, Decoding, ComputingHomography, Complete, Failed,
]

StateListener = Callable[[CalibrationState, CalibrationState], None]


@dataclass
class ProjectorCalibration:
    """Calibration data owned by the session for one projector.

    Attributes:
        id: Projector ID.
        width: Projector width.
        height: Projector height.
        homography: Camera-to-projector 3x3 matrix once fitted.
        fit: Full fit statistics once fitted.
        correspondences: Decoded correspondences once decoded.
        calibrating: Whether this projector is being captured now.
    """

    id: int
    width: int
    height: int
    homography: np.ndarray | None = None
    fit: HomographyResult | None = None
    correspondences: DecodedCorrespondences | None = None
    calibrating: bool = False

    @property
    def is_calibrated(self) -> bool:
        return self.homography is not None


@dataclass(frozen=True)
class CaptureRequest:
    """What the session wants displayed for the next capture.

    Attributes:
        kind: ``"white"``, ``"black"`` or ``"pattern"``.
        pattern: The Gray code pattern for ``kind == "pattern"``.
        image: The rasterized image to display.
    """

    kind: str
    pattern: PatternSpec | None
    image: np.ndarray


class CalibrationSession:
    """Drives structured-light calibration across several projectors.

    Attributes:
        config: Capture sequencing settings.
        decoder: Gray code decoder.
        homography_computer: Homography fitter.
        calibrations: One entry per projector, in calibration order.
    """

    def __init__(
        self,
        projectors: Sequence[ProjectorConfig],
        config: SessionConfig | None = None,
        decoder: Decoder | None = None,
        homography_computer: HomographyComputer | None = None,
    ) -> None:
        if not projectors:
            raise InvalidConfiguration("No projectors configured")
        self.config = config or SessionConfig()
        if self.config.frames_to_average < 1:
            raise InvalidConfiguration("frames_to_average must be >= 1")
        self.decoder = decoder or Decoder()
        self.homography_computer = homography_computer or HomographyComputer()

        self._generators = [PatternGenerator(p.width, p.height) for p in projectors]
        self._sequences = [g.pattern_sequence() for g in self._generators]
        self.calibrations = [
            ProjectorCalibration(id=p.id, width=p.width, height=p.height)
            for p in projectors
        ]

        self._state: CalibrationState = Idle()
        self._listeners: list[StateListener] = []
        self._white: np.ndarray | None = None
        self._black: np.ndarray | None = None
        self._pairs: list[CapturedPair] = []
        self._pending: dict[int, Future] = {}
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="homography")
            if self.config.background_homography else None
        )

    # -- Introspection -----------------------------------------------------

    @property
    def state(self) -> CalibrationState:
        return self._state

    def add_listener(self, listener: StateListener) -> None:
        """Call ``listener(old, new)`` on every state transition."""
        self._listeners.append(listener)

    def pattern_config(self, projector_index: int) -> PatternConfig:
        return self._generators[projector_index].config

    def frames_per_projector(self, projector_index: int) -> int:
        """Captures needed for one projector, references included."""
        return len(self._sequences[projector_index]) + 2

    def progress(self) -> float:
        """Fraction of all captures done, in ``[0, 1]``."""
        total = sum(
            self.frames_per_projector(i) for i in range(len(self.calibrations))
        )
        done = sum(
            self.frames_per_projector(i)
            for i, cal in enumerate(self.calibrations)
            if cal.is_calibrated or i in self._pending
        )
        state = self._state
        if isinstance(state, Capturing):
            done += state.pattern_index
        elif isinstance(state, (Decoding, ComputingHomography)):
            if not self.calibrations[state.projector_index].is_calibrated:
                done += self.frames_per_projector(state.projector_index)
        return min(done / total, 1.0)

    def current_request(self) -> CaptureRequest | None:
        """The pattern to display next, or ``None`` when not capturing."""
        state = self._state
        if not isinstance(state, Capturing):
            return None
        gen = self._generators[state.projector_index]
        i = state.pattern_index
        if i == 0:
            return CaptureRequest("white", None, gen.generate_white())
        if i == 1:
            return CaptureRequest("black", None, gen.generate_black())
        spec = self._sequences[state.projector_index][i - 2]
        return CaptureRequest("pattern", spec, gen.generate_pattern(spec))

    # -- Transitions -------------------------------------------------------

    def _transition(self, new: CalibrationState) -> None:
        old = self._state
        self._state = new
        logger.debug("Calibration state %s -> %s", old, new)
        for listener in self._listeners:
            listener(old, new)

    def _fail(self, error: CalibrationError, projector_index: int | None) -> None:
        logger.error(
            "Calibration failed (%s) for projector %s: %s",
            error.reason.value, projector_index, error.message,
        )
        for cal in self.calibrations:
            cal.calibrating = False
        self._discard_buffers()
        self._transition(Failed(error.reason, error.message, projector_index))

    def _discard_buffers(self) -> None:
        self._white = None
        self._black = None
        self._pairs = []

    def _begin_capture(self, projector_index: int) -> None:
        self._discard_buffers()
        self.calibrations[projector_index].calibrating = True
        logger.info(
            "Capturing projector %d (%d frames)",
            self.calibrations[projector_index].id,
            self.frames_per_projector(projector_index),
        )
        self._transition(Capturing(projector_index, 0))

    def start(self, projector_index: int = 0) -> None:
        """Leave ``Idle`` and begin capturing *projector_index*.

        Raises:
            RuntimeError: If the session is not idle.
        """
        if not isinstance(self._state, Idle):
            raise RuntimeError(f"Cannot start from state {self._state}")
        logger.info(
            "Starting calibration for %d projector(s)", len(self.calibrations),
        )
        self._begin_capture(projector_index)

    def retry(self) -> None:
        """Restart the failed projector from its first capture.

        Raises:
            RuntimeError: If the session has not failed.
        """
        state = self._state
        if not isinstance(state, Failed):
            raise RuntimeError(f"Cannot retry from state {state}")
        index = state.projector_index
        if index is None:
            index = self._next_uncalibrated(-1)
        self._begin_capture(0 if index is None else index)

    def reset(self) -> None:
        """Return to ``Idle`` from any state.

        Frames buffered for the in-progress projector are discarded;
        projectors that already have a homography keep it.
        """
        for index, future in self._pending.items():
            future.cancel()
            logger.info(
                "Dropping pending homography for projector %d",
                self.calibrations[index].id,
            )
        self._pending.clear()
        for cal in self.calibrations:
            cal.calibrating = False
        self._discard_buffers()
        self._transition(Idle())

    def submit_frame(self, frame: np.ndarray) -> CalibrationState:
        """Hand over the camera frame for the current capture request.

        Raises:
            RuntimeError: If the session is not capturing.
            ValueError: If *frame* differs in size from the white
                reference.  The session stays on the same request.
        """
        state = self._state
        if not isinstance(state, Capturing):
            raise RuntimeError(f"Not capturing (state {state})")
        p, i = state.projector_index, state.pattern_index
        if i > 0 and frame.shape[:2] != self._white.shape[:2]:
            raise ValueError(
                f"Camera frame shape {frame.shape[:2]} does not match "
                f"reference shape {self._white.shape[:2]}"
            )

        if i == 0:
            self._white = frame
        elif i == 1:
            self._black = frame
        else:
            self._pairs.append(CapturedPair(self._sequences[p][i - 2], frame))

        if i + 1 < self.frames_per_projector(p):
            self._transition(Capturing(p, i + 1))
        else:
            self._finish_projector(p)
        return self._state

    def _finish_projector(self, p: int) -> None:
        cal = self.calibrations[p]
        self._transition(Decoding(p))
        try:
            corr = self.decoder.decode(
                self._white, self._black, self._pairs, self.pattern_config(p),
            )
        except CalibrationError as e:
            self._fail(e, p)
            return
        cal.correspondences = corr
        cal.calibrating = False
        self._discard_buffers()

        if self._executor is not None:
            self._pending[p] = self._executor.submit(
                self.homography_computer.compute, corr,
            )
            self._advance(p)
            return

        self._transition(ComputingHomography(p))
        try:
            result = self.homography_computer.compute(corr)
        except CalibrationError as e:
            self._fail(e, p)
            return
        self._store_fit(p, result)
        self._advance(p)

    def _store_fit(self, p: int, result: HomographyResult) -> None:
        cal = self.calibrations[p]
        cal.fit = result
        cal.homography = result.matrix
        logger.info(
            "Projector %d calibrated: rms %.3f px, %.1f%% inliers",
            cal.id, result.residual_rms, 100.0 * result.inlier_ratio,
        )

    def _next_uncalibrated(self, after: int) -> int | None:
        for i in range(after + 1, len(self.calibrations)):
            if not self.calibrations[i].is_calibrated and i not in self._pending:
                return i
        return None

    def _advance(self, p: int) -> None:
        nxt = self._next_uncalibrated(p)
        if nxt is not None:
            self._begin_capture(nxt)
            return
        if self._pending:
            self._transition(ComputingHomography(max(self._pending)))
            if not self._collect_pending(wait=True):
                return
        if all(cal.is_calibrated for cal in self.calibrations):
            logger.info("All projectors calibrated")
            self._transition(Complete())
        else:
            # An earlier projector is still missing; resume with it.
            self._begin_capture(self._next_uncalibrated(-1))

    def _collect_pending(self, wait: bool) -> bool:
        """Store finished background fits; ``False`` if one failed."""
        for p in sorted(self._pending):
            future = self._pending[p]
            if not wait and not future.done():
                continue
            del self._pending[p]
            try:
                result = future.result()
            except CalibrationError as e:
                self._fail(e, p)
                return False
            self._store_fit(p, result)
        return True

    # -- Driving -----------------------------------------------------------

    def _grab(self, camera: Camera) -> np.ndarray:
        timeout = self.config.capture_timeout_s
        try:
            frames = [
                camera.grab(timeout) for _ in range(self.config.frames_to_average)
            ]
        except TimeoutError as e:
            raise CaptureTimeout("capture timeout") from e
        if len(frames) == 1:
            return frames[0]
        mean = np.mean(np.stack(frames, axis=0), axis=0)
        if np.issubdtype(frames[0].dtype, np.integer):
            return np.rint(mean).astype(frames[0].dtype)
        return mean.astype(frames[0].dtype)

    def step(self, display: PatternDisplay, camera: Camera) -> CalibrationState:
        """Display the requested pattern, capture it and submit it.

        Does nothing unless the session is capturing.
        """
        if self._pending and not self._collect_pending(wait=False):
            return self._state
        state = self._state
        request = self.current_request()
        if request is None:
            return state

        logger.debug(
            "Projector %d frame %d: %s %s",
            state.projector_index, state.pattern_index,
            request.kind, request.pattern or "",
        )
        display.display_pattern(request.image)
        if self.config.settle_time_s > 0:
            time.sleep(self.config.settle_time_s)
        try:
            frame = self._grab(camera)
        except CaptureTimeout as e:
            self._fail(e, state.projector_index)
            return self._state
        return self.submit_frame(frame)

    def run(
        self,
        displays: Sequence[PatternDisplay],
        camera: Camera,
        on_projector_change: Callable[[int], None] | None = None,
    ) -> CalibrationState:
        """Step until the session completes or fails.

        Args:
            displays: One display per projector, in calibration order.
            camera: Camera observing the projection surface.
            on_projector_change: Called with the projector index each
                time capture moves to a new projector.

        Returns:
            The final state (``Complete`` or ``Failed``).
        """
        if len(displays) != len(self.calibrations):
            raise ValueError(
                f"Expected {len(self.calibrations)} displays, got {len(displays)}"
            )
        if isinstance(self._state, Idle):
            self.start()

        active: int | None = None
        while isinstance(self._state, Capturing):
            p = self._state.projector_index
            if p != active:
                active = p
                if on_projector_change is not None:
                    on_projector_change(p)
            self.step(displays[p], camera)
        return self._state

    def close(self) -> None:
        """Release the background worker, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> CalibrationSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
