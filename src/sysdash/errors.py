class SysdashError(Exception):
    """Base class for errors reported to the user."""


class DataUnavailable(SysdashError):
    """The service manager or journal could not be queried."""


class ActionError(SysdashError):
    """A unit action was rejected or failed."""


class ConfigError(SysdashError):
    pass
