"""Entry point for ``python -m serverless_runtime``."""

from .cli import main

if __name__ == "__main__":
    main()
