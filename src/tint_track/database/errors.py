"""Error kinds raised by the repository layer."""


class TintTrackError(Exception):
    """Base class for all application errors."""


class ValidationError(TintTrackError, ValueError):
    """Input was rejected before anything was written."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(TintTrackError, LookupError):
    """A referenced job, film, or user does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
