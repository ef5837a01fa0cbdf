from accord.recording.recorder import FlushOutcome, InteractionRecorder

__all__ = [
    "FlushOutcome",
    "InteractionRecorder",
]
