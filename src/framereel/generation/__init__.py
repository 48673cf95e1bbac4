"""Generation package: credentials, Gemini captioning, Veo clip generation, orchestration."""
from framereel.generation.auth import (
    CredentialProvider,
    EnvCredentialProvider,
    PromptCredentialProvider,
    ensure_credential,
)
from framereel.generation.describe import Describer
from framereel.generation.orchestrator import GeminiSteps, GenerationOrchestrator, GenerationSteps
from framereel.generation.video import VideoGenerator, fetch_artifact

__all__ = [
    "CredentialProvider",
    "EnvCredentialProvider",
    "PromptCredentialProvider",
    "ensure_credential",
    "Describer",
    "GeminiSteps",
    "GenerationOrchestrator",
    "GenerationSteps",
    "VideoGenerator",
    "fetch_artifact",
]
