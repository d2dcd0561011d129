"""Allow running as ``python -m meowsense``."""

from .cli import main

if __name__ == "__main__":
    main()
