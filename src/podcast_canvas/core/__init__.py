"""core primitives shared between frontends."""

from .models import (
    Podcast,
    PodcastNode,
    NodeType,
    ScriptStyle,
    PodcastStatus,
    GenerationKind,
    TopicSuggestion,
    TopicRequest,
    ContentRequest,
    TopicResult,
    StreamResult,
    GenerationError,
    ENDING_ORDER_INDEX,
    MORE_ORDER_INDEX,
)
from .store import PodcastStore, SaveStatus
from .layout import Position, Bounds, compute_layout, layout_bounds, apply_layout
from .context import compress_context, build_context_messages
from .frames import Frame, FrameType, FrameDecoder
from .client import ClaudeGenerationService, MockGenerationService, GenerationService
from .streaming import StreamingIngestionController, StreamState
from .persistence import (
    PersistenceService,
    PersistenceError,
    MemoryPersistence,
    JsonFilePersistence,
    get_data_dir,
)
from .pruning import PruningCoordinator
from .autosave import AutosaveScheduler
from .export import ExportResult, export_markdown
from .studio import PodcastStudio

__all__ = [
    # models
    "Podcast",
    "PodcastNode",
    "NodeType",
    "ScriptStyle",
    "PodcastStatus",
    "GenerationKind",
    "TopicSuggestion",
    "TopicRequest",
    "ContentRequest",
    "TopicResult",
    "StreamResult",
    "GenerationError",
    "ENDING_ORDER_INDEX",
    "MORE_ORDER_INDEX",
    # store
    "PodcastStore",
    "SaveStatus",
    # layout
    "Position",
    "Bounds",
    "compute_layout",
    "layout_bounds",
    "apply_layout",
    # context
    "compress_context",
    "build_context_messages",
    # frames
    "Frame",
    "FrameType",
    "FrameDecoder",
    # client
    "ClaudeGenerationService",
    "MockGenerationService",
    "GenerationService",
    # streaming
    "StreamingIngestionController",
    "StreamState",
    # persistence
    "PersistenceService",
    "PersistenceError",
    "MemoryPersistence",
    "JsonFilePersistence",
    "get_data_dir",
    # session
    "PruningCoordinator",
    "AutosaveScheduler",
    "ExportResult",
    "export_markdown",
    "PodcastStudio",
]
