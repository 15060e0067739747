"""Error taxonomy shared by every stage of the pipeline."""


class ParseError(ValueError):
    """A raw input line could not be parsed into node identifiers."""

    def __init__(self, line_no: int, line: str, reason: str = "non-integer token"):
        self.line_no = line_no
        self.line = line
        self.reason = reason
        super().__init__(f"line {line_no}: {reason}: {line!r}")


class FormatIndeterminate(ValueError):
    """Every line of the input was a singleton, so the format cannot be told."""


class StageFailure(RuntimeError):
    """A job failed at the substrate level; no output of it was retained."""

    def __init__(self, stage: str, message: str = ""):
        self.stage = stage
        super().__init__(f"stage {stage} failed" + (f": {message}" if message else ""))


class IterationCapped(RuntimeWarning):
    """The contraction hit its round limit before reaching a fixed point."""
