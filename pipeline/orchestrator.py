"""Pipeline orchestrator: runs the processing stages for a workflow.

Stages run in order, each persisting its artifact before the next begins:

    video processing  frame sampling + description, in parallel with
                      audio extraction + transcription
    raw extraction    TranscriptSynthesizer
    organization      StepOrganizer
    block generation  BlockGraphGenerator

A failure in any stage other than the audio branch marks the workflow
``failed``; artifacts already written are kept.
"""

import logging
import shutil
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Iterator, TYPE_CHECKING

from analyzer.block_generator import BlockGraphGenerator
from analyzer.schema import FrameDescription, PipelineStage, WorkflowStatus
from analyzer.step_organizer import StepOrganizer
from analyzer.structured import StructuredGenerator
from analyzer.transcript_synthesizer import TranscriptSynthesizer
from errors import PipelineBusyError, PipelineCancelled, VideoValidationError
from media.transcriber import Transcriber
from media.video_processor import VideoProcessor
from media.vision import FrameDescriber
from utils.llm import LLMClient
from utils.tracking import CostTracker, Timer
from .blob_store import BlobStore, is_blob_ref
from .progress import WorkflowStatusView, compute_status
from .store import WorkflowStore

if TYPE_CHECKING:
    from config import Config
    from utils.logger import WorkflowLogger

_module_logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Sequences the pipeline stages and owns their temporary resources.

    Workflows are processed on a thread pool, so several can run at once;
    each run only ever writes to its own workflow record.

    Example:
        >>> orchestrator = PipelineOrchestrator.from_config(config, store, blob_store)
        >>> orchestrator.start(workflow_id)  # returns immediately
        >>> orchestrator.get_status(workflow_id).to_dict()
    """

    def __init__(
        self,
        store: WorkflowStore,
        extractor: VideoProcessor,
        transcriber: Transcriber,
        describer: FrameDescriber,
        synthesizer: TranscriptSynthesizer,
        organizer: StepOrganizer,
        block_generator: BlockGraphGenerator,
        blob_store: BlobStore | None = None,
        work_dir: Path | None = None,
        max_workers: int = 4,
        cost_tracker: CostTracker | None = None,
        logger: "WorkflowLogger | None" = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Workflow store holding records and artifacts.
            extractor: Video validation and frame/audio extraction.
            transcriber: Narration transcription (never raises).
            describer: Per-frame scene description.
            synthesizer: Raw transcript synthesis stage.
            organizer: Step organization stage.
            block_generator: Block graph generation stage.
            blob_store: Store used to resolve ``blob://`` video references.
            work_dir: Parent directory for per-run temporary directories.
                If None, the system temp directory is used.
            max_workers: Maximum number of workflows processed at once.
            cost_tracker: Tracker shared with the LLM client, for reporting.
            logger: Optional WorkflowLogger for styled output.
        """
        self.store = store
        self.extractor = extractor
        self.transcriber = transcriber
        self.describer = describer
        self.synthesizer = synthesizer
        self.organizer = organizer
        self.block_generator = block_generator
        self.blob_store = blob_store
        self.work_dir = Path(work_dir) if work_dir else None
        self.cost_tracker = cost_tracker
        self.logger = logger

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="workflow")
        self._cancel_events: dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: "Config",
        store: WorkflowStore,
        blob_store: BlobStore | None = None,
        cost_tracker: CostTracker | None = None,
        logger: "WorkflowLogger | None" = None,
        verbose: bool = False,
    ) -> "PipelineOrchestrator":
        """Wire up every stage from a Config."""
        cost_tracker = cost_tracker or CostTracker()
        llm_client = LLMClient(cost_tracker, logger)
        models = config.models

        def structured(model: str) -> StructuredGenerator:
            return StructuredGenerator(
                llm_client,
                model,
                max_tokens=config.max_tokens,
                timeout=config.llm_timeout_seconds,
            )

        if config.work_dir:
            Path(config.work_dir).mkdir(parents=True, exist_ok=True)

        return cls(
            store=store,
            extractor=VideoProcessor(
                sample_rate_hz=config.frame_sample_rate_hz,
                max_frames=config.max_frames,
                audio_sample_rate=config.audio_sample_rate,
                max_video_bytes=config.max_video_bytes,
                allowed_formats=config.allowed_video_formats,
                max_video_seconds=config.max_video_seconds,
                logger=logger,
            ),
            transcriber=Transcriber(
                model=models.transcription,
                inline_limit_bytes=config.inline_audio_limit_bytes,
                timeout=config.transcription_timeout_seconds,
                cost_tracker=cost_tracker,
                logger=logger,
            ),
            describer=FrameDescriber(
                llm_client,
                model=models.vision,
                batch_size=config.vision_batch_size,
                batch_wait=config.vision_batch_wait_seconds,
                timeout=config.llm_timeout_seconds,
                verbose=verbose,
                logger=logger,
            ),
            synthesizer=TranscriptSynthesizer(structured(models.synthesis), logger),
            organizer=StepOrganizer(structured(models.organization), logger),
            block_generator=BlockGraphGenerator(structured(models.block_generation), logger),
            blob_store=blob_store,
            work_dir=config.work_dir,
            max_workers=config.max_concurrent_workflows,
            cost_tracker=cost_tracker,
            logger=logger,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _begin(self, workflow_id: int) -> threading.Event:
        """Move a workflow into ``processing`` and register its cancel token.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            PipelineBusyError: If the workflow is already being processed.
        """
        with self._lock:
            record = self.store.get(workflow_id)
            if workflow_id in self._cancel_events or record.status == WorkflowStatus.PROCESSING:
                raise PipelineBusyError(f"Workflow {workflow_id} is already processing")

            # A retry always re-runs the whole pipeline from the video
            self.store.reset_artifacts(workflow_id)
            self.store.update_status(workflow_id, WorkflowStatus.PROCESSING, PipelineStage.QUEUED)

            cancel_event = threading.Event()
            self._cancel_events[workflow_id] = cancel_event
            return cancel_event

    def start(self, workflow_id: int) -> Future:
        """Begin processing in the background and return immediately."""
        cancel_event = self._begin(workflow_id)
        try:
            return self._executor.submit(self._execute, workflow_id, cancel_event)
        except RuntimeError as e:
            # Executor already shut down
            with self._lock:
                self._cancel_events.pop(workflow_id, None)
            self.store.update_status(workflow_id, WorkflowStatus.FAILED, error=str(e) or "not started")
            raise

    def run(self, workflow_id: int) -> bool:
        """Process a workflow on the calling thread.

        Returns:
            True if the workflow completed, False if it failed.
        """
        cancel_event = self._begin(workflow_id)
        return self._execute(workflow_id, cancel_event)

    def cancel(self, workflow_id: int) -> bool:
        """Request cancellation; honored at the next stage boundary.

        Returns:
            True if the workflow was running, False otherwise.
        """
        self.store.get(workflow_id)
        with self._lock:
            cancel_event = self._cancel_events.get(workflow_id)
        if cancel_event is None:
            return False
        cancel_event.set()
        self._log_warning(f"Workflow {workflow_id}: cancellation requested")
        return True

    def get_status(self, workflow_id: int) -> WorkflowStatusView:
        """Read-only progress view; never waits on a running pipeline."""
        return compute_status(self.store.get(workflow_id))

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; cancel everything still running."""
        with self._lock:
            events = list(self._cancel_events.values())
        for event in events:
            event.set()
        self._executor.shutdown(wait=wait)

    # =========================================================================
    # Pipeline body
    # =========================================================================

    def _execute(self, workflow_id: int, cancel_event: threading.Event) -> bool:
        try:
            with Timer("Pipeline") as timer:
                self._run_stages(workflow_id, cancel_event)
            self.store.update_status(workflow_id, WorkflowStatus.COMPLETED, PipelineStage.DONE)
            self._log_success(f"Workflow {workflow_id}: completed in {timer.elapsed_str}")
            return True
        except PipelineCancelled:
            self.store.update_status(workflow_id, WorkflowStatus.FAILED, error="cancelled")
            self._log_warning(f"Workflow {workflow_id}: cancelled")
            return False
        except Exception as e:
            message = str(e) or type(e).__name__
            _module_logger.exception(f"Workflow {workflow_id} failed")
            self.store.update_status(workflow_id, WorkflowStatus.FAILED, error=message)
            self._log_error(f"Workflow {workflow_id}: failed: {message}")
            return False
        finally:
            with self._lock:
                self._cancel_events.pop(workflow_id, None)

    def _run_stages(self, workflow_id: int, cancel_event: threading.Event) -> None:
        record = self.store.get(workflow_id)

        with ExitStack() as resources:
            run_dir = Path(tempfile.mkdtemp(prefix=f"workflow_{workflow_id}_", dir=self.work_dir))
            resources.callback(self._remove_dir, run_dir)

            with self._stage(workflow_id, PipelineStage.VIDEO_PROCESSING, cancel_event):
                video_path = self._resolve_video(record.video_ref, run_dir)
                validation = self.extractor.validate(video_path)
                if not validation.valid:
                    raise VideoValidationError(validation.reason or "Invalid video")
                frame_descriptions, narration = self._process_media(workflow_id, video_path, run_dir)

            with self._stage(workflow_id, PipelineStage.RAW_EXTRACTION, cancel_event):
                raw = self.synthesizer.synthesize(frame_descriptions, narration)
                self.store.save_raw_extraction(workflow_id, raw)

            with self._stage(workflow_id, PipelineStage.ORGANIZATION, cancel_event):
                organized = self.organizer.organize(raw)
                self.store.save_organized_workflow(workflow_id, organized)

            with self._stage(workflow_id, PipelineStage.BLOCK_GENERATION, cancel_event):
                structure = self.block_generator.generate(organized)
                self.store.save_block_structure(workflow_id, structure)

    @contextmanager
    def _stage(
        self,
        workflow_id: int,
        stage: PipelineStage,
        cancel_event: threading.Event,
    ) -> Iterator[None]:
        if cancel_event.is_set():
            raise PipelineCancelled(f"Workflow {workflow_id} was cancelled")

        self.store.set_stage(workflow_id, stage)
        label = stage.value.replace("_", " ")
        self._log_step(f"Workflow {workflow_id}: {label}...")
        with Timer(label) as timer:
            yield
        self._log_info(f"Workflow {workflow_id}: {label} finished in {timer.elapsed_str}")

    def _resolve_video(self, video_ref: str, run_dir: Path) -> Path:
        """Local paths are used as-is; blob references are downloaded into the run directory."""
        if not is_blob_ref(video_ref):
            return Path(video_ref)

        if self.blob_store is None:
            raise VideoValidationError(f"No blob store configured to resolve {video_ref}")
        dest = run_dir / Path(video_ref).name
        try:
            return self.blob_store.download(video_ref, dest)
        except FileNotFoundError as e:
            raise VideoValidationError("Video file not found") from e

    def _process_media(
        self,
        workflow_id: int,
        video_path: Path,
        run_dir: Path,
    ) -> tuple[list[FrameDescription], str]:
        """Run the frame and audio branches concurrently and join both.

        The frame branch is required; the audio branch degrades to empty narration.
        """
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"media-{workflow_id}") as pool:
            frames_future = pool.submit(self._frame_branch, video_path, run_dir)
            audio_future = pool.submit(self._audio_branch, workflow_id, video_path, run_dir)
            narration = audio_future.result()
            frame_descriptions = frames_future.result()
        return frame_descriptions, narration

    def _frame_branch(self, video_path: Path, run_dir: Path) -> list[FrameDescription]:
        extraction = self.extractor.extract_frames(video_path, parent_dir=run_dir)
        try:
            return self.describer.describe_frames(extraction.frames)
        finally:
            extraction.cleanup()

    def _audio_branch(self, workflow_id: int, video_path: Path, run_dir: Path) -> str:
        audio_path = run_dir / "audio.wav"
        try:
            self.extractor.extract_audio(video_path, audio_path)
            return self.transcriber.transcribe(audio_path)
        except Exception as e:
            self._log_warning(f"Workflow {workflow_id}: continuing without narration ({e})")
            return ""
        finally:
            try:
                audio_path.unlink(missing_ok=True)
            except OSError as e:
                _module_logger.error(f"Failed to remove audio file {audio_path}: {e}")

    def _remove_dir(self, path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            _module_logger.error(f"Failed to remove temporary directory {path}: {e}")

    # =========================================================================
    # Logging helpers
    # =========================================================================

    def _log_step(self, message: str) -> None:
        if self.logger:
            self.logger.step(message)
        else:
            _module_logger.info(message)

    def _log_info(self, message: str) -> None:
        if self.logger:
            self.logger.info(message)
        else:
            _module_logger.info(message)

    def _log_success(self, message: str) -> None:
        if self.logger:
            self.logger.success(message)
        else:
            _module_logger.info(message)

    def _log_warning(self, message: str) -> None:
        if self.logger:
            self.logger.warning(message)
        else:
            _module_logger.warning(message)

    def _log_error(self, message: str) -> None:
        if self.logger:
            self.logger.error(message)
