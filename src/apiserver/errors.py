"""Exceptions raised outside the request/response path."""


class ConfigError(ValueError):
    """Invalid startup configuration. Fatal: the server must not start."""


class ServerError(RuntimeError):
    """The listener could not be created or failed while serving."""
