"""Package entry point for ``python -m clip_worker``.

WHY: Operators run local renders and the API server as
``python -m clip_worker render ...`` or ``python -m clip_worker serve``.

HOW: Delegates straight to the CLI's main(), which dispatches subcommands.
"""

from clip_worker.cli import main

if __name__ == "__main__":
    main()
