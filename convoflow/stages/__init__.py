from convoflow.stages.base import StageProcessor
from convoflow.stages.format import FormatStage
from convoflow.stages.infer import InferStage
from convoflow.stages.ingest import IngestInput, IngestStage
from convoflow.stages.integrate import IntegrateStage

__all__ = [
    "FormatStage",
    "InferStage",
    "IngestInput",
    "IngestStage",
    "IntegrateStage",
    "StageProcessor",
]
