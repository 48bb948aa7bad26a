"""
Error taxonomy for the lyric topic pipeline.

Every error carries the stage it was raised in so a failed run names
both the stage and the invariant that broke.
"""


class PipelineError(Exception):
    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(f"[{stage}] {message}")


class SchemaError(PipelineError):
    """Input table is missing columns or has duplicate ids."""


class AlignmentError(PipelineError):
    """Counts, vocabulary and metadata no longer describe the same documents."""


class DegenerateInputError(PipelineError):
    """Empty corpus, empty vocabulary, or a topic count the corpus cannot support."""


class DegenerateClusteringError(PipelineError):
    """No cluster count can be chosen from the sweep."""
