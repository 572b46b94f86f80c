"""Exception hierarchy for agent operations."""


class AgentError(Exception):
    """Base class for user-facing agent failures."""
    pass


class CloneError(AgentError):
    """The clone request was aborted."""
    pass


class ContainerExistsError(CloneError):
    """A container with the requested name already exists."""

    def __init__(self, name: str):
        super().__init__(f"Container {name} already exist")
        self.name = name


class TrustExchangeError(AgentError):
    """Management server refused the container registration."""
    pass


class FatalError(AgentError):
    """Unrecoverable failure; the invoking process should terminate."""
    pass


class KeyIdParseError(FatalError):
    """Key id could not be extracted from gpg output."""
    pass
