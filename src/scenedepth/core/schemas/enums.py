from enum import Enum


class ProcessingStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    PROCESSING_DEPTH = "processing_depth"
    READY = "ready"
    ERROR = "error"


class SceneType(str, Enum):
    INDOOR = "INDOOR"
    OUTDOOR = "OUTDOOR"
    OBJECT = "OBJECT"
    UNKNOWN = "UNKNOWN"


class TechPipeline(str, Enum):
    DEPTH_MESH = "DEPTH_MESH"
    GAUSSIAN_SPLAT = "GAUSSIAN_SPLAT"
    GENERATIVE_MESH = "GENERATIVE_MESH"


class DepthMethod(str, Enum):
    MODEL = "model"
    WORKER = "worker"
    CANVAS_FALLBACK = "canvas-fallback"


class ProviderType(str, Enum):
    SCENE = "scene"
    DEPTH = "depth"


class AssetType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
