from __future__ import annotations

import os
from pathlib import Path

from citescrape.exceptions import MissingCredentialsError


def sanitize_ssl_keylogfile() -> None:
    """Unset SSLKEYLOGFILE when it points to an unusable path.

    httpx builds an SSL context per client and crashes when the key log
    target cannot be opened, so every provider calls this before connecting.
    """
    keylog_path = os.getenv("SSLKEYLOGFILE", "").strip()
    if not keylog_path:
        return

    try:
        path = Path(keylog_path)
        if not path.parent.exists():
            os.environ.pop("SSLKEYLOGFILE", None)
            return
        with open(path, "a", encoding="utf-8"):
            pass
    except OSError:
        os.environ.pop("SSLKEYLOGFILE", None)


def require_credentials(values: dict[str, str | None]) -> dict[str, str]:
    """Return the stripped credentials, raising if any of them is blank.

    Keys are environment variable names so the error tells the operator
    exactly what to export.
    """
    missing = [name for name, value in values.items() if not (value or "").strip()]
    if missing:
        raise MissingCredentialsError(missing)
    return {name: str(value).strip() for name, value in values.items()}
