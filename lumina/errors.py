class LuminaError(Exception):
    """Base class for errors surfaced to the client."""


class IngestionError(LuminaError):
    """An uploaded file could not be turned into slides."""


class AnalysisServiceError(LuminaError):
    """The analysis service failed or could not be reached."""


class MalformedGenerationError(AnalysisServiceError):
    """The analysis service answered, but the payload was unusable."""


class EmptyDeckError(LuminaError):
    pass


class GateBusyError(LuminaError):
    def __init__(self, gate: str) -> None:
        super().__init__(f"{gate}_in_flight")
        self.gate = gate


class InvalidQuizAction(LuminaError):
    pass


class WorkspaceChangedError(LuminaError):
    """The workspace was cleared or resumed while a request was pending."""
