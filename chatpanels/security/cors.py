from __future__ import annotations


def cors_kwargs(origins: list[str]) -> dict:
    # Workflow extras carry credentials in these headers
    allow_headers = ["Content-Type", "X-Request-Id", "X-Dify-Api-Key", "X-Dify-Base-Url"]

    return {
        "allow_origins": origins,
        "allow_credentials": False,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": allow_headers,
        "expose_headers": ["X-Request-Id"],
    }
