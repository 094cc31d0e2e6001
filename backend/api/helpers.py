"""Shared API helpers for route handlers.

Response builders and exception-to-HTTP translation used by the directory
routes.
"""

from fastapi import HTTPException

from schemas.directory_config import DirectoryConfig
from services.exceptions import DirectoryConfigError, DirectoryNotConfiguredError


def config_response_dict(config: DirectoryConfig) -> dict:
    """Build a response dict for a directory config with the password masked.

    Args:
        config: The configuration to render.

    Returns:
        JSON-compatible dict safe to return to clients.
    """
    return config.redacted()


def config_error_to_http(error: DirectoryConfigError) -> HTTPException:
    """Translate a configuration error into the matching HTTPException.

    Args:
        error: A DirectoryConfigError or one of its subclasses.

    Returns:
        404 when nothing is configured, 422 with per-field errors otherwise.
    """
    if isinstance(error, DirectoryNotConfiguredError):
        return HTTPException(status_code=404, detail=str(error))
    return HTTPException(
        status_code=422,
        detail={"message": str(error), "errors": jsonable_errors(error.errors)},
    )


def jsonable_errors(errors: list[dict]) -> list[dict]:
    """Keep only the JSON-safe parts of pydantic error dicts."""
    return [
        {
            "loc": [str(part) for part in e.get("loc", ())],
            "msg": str(e.get("msg", "")),
            "type": str(e.get("type", "")),
        }
        for e in errors
    ]
