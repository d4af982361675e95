import os

import uvicorn

from leadmail.logging_config import configure_logging


def main() -> None:
    """
    Uvicorn launcher.
    - Reads PORT from env, defaults to 5000.
    - Logging configured before Uvicorn starts.
    - Single process: the import worker's overlap guard is process-local.
    """
    configure_logging()

    port = int(os.environ.get("PORT", 5000))

    uvicorn.run(
        "leadmail.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        workers=1,
        log_config=None,  # keep configure_logging() handlers
        use_colors=False,
    )


if __name__ == "__main__":
    main()
