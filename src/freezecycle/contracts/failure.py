"""Exception raised when a processing stage breaks its own guarantees."""


class ContractViolation(RuntimeError):
    """A segmentation or point-construction stage produced invalid output.

    This signals a bug in the engine, never bad sensor data: rows with
    missing fields are dropped while points are built, and configuration
    mistakes surface as pydantic ``ValidationError`` at start-up.
    """
    pass
