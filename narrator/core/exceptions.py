class NarratorError(Exception):
    """Base exception for all application errors."""
    pass

class EmptyInput(NarratorError):
    """Raised by the chunker for empty or whitespace-only text."""
    pass

class UnsupportedPlatform(NarratorError):
    """The host has no usable speech capability for the requested backend."""
    pass

class LoadFailed(NarratorError):
    """A speech model could not be downloaded or initialized."""
    pass

class SynthesisError(NarratorError):
    """A segment failed while being synthesized or played."""
    pass

class FormatUnsupported(NarratorError):
    """Synthesized audio arrived in a shape the adapter cannot play."""
    pass

class ConfigurationError(NarratorError):
    pass
