from starlette import status


class HeirloomError(Exception):
    """Base for failures surfaced to API callers as ``{"error", "code"}``."""

    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ArtifactNotFound(HeirloomError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Artifact not found"):
        super().__init__(message)


class CollectionNotFound(HeirloomError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Collection not found"):
        super().__init__(message)


class NoContent(HeirloomError):
    code = "no_content"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "No transcript or image captions available for summary"):
        super().__init__(message)


class AnalysisInProgress(HeirloomError):
    code = "analysis_in_progress"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Analysis already in progress for this artifact"):
        super().__init__(message)


class GenerationFailure(HeirloomError):
    code = "generation_failed"


class InvalidGeneration(GenerationFailure):
    def __init__(self, message: str = "AI did not generate a valid description"):
        super().__init__(message)


class PersistenceFailure(HeirloomError):
    code = "persistence_failed"


class InvalidRecord(PersistenceFailure):
    """The store refused a record that fails schema validation."""

    code = "invalid_record"
    status_code = status.HTTP_400_BAD_REQUEST
