"""Duration-preserving STFT pitch shifting and a threaded block pipeline."""

__version__ = "1.2.0"

__all__ = ["pipeline", "shifter"]